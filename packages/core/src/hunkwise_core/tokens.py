"""Token counting and per-model request budgets."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import tiktoken

# Reserved on top of the response budget so prompt rendering differences
# between our tokenizer and the provider's never push a request over the limit.
_REQUEST_MARGIN = 100

# model -> (max_tokens, response_tokens)
_MODEL_LIMITS: dict[str, tuple[int, int]] = {
    "claude-opus-4": (200000, 4096),
    "claude-opus-4-20250514": (200000, 4096),
    "claude-opus-4.5": (200000, 4096),
    "claude-sonnet-4": (200000, 8192),
    "claude-sonnet-4-20250514": (200000, 8192),
    "claude-sonnet-4.5": (200000, 8192),
    "claude-3-5-sonnet-20241022": (200000, 8192),
    "claude-3-5-sonnet-20240620": (200000, 8192),
    "claude-3-5-haiku-20241022": (200000, 8192),
    "claude-3-haiku-20240307": (200000, 8192),
    "gpt-4o": (128000, 16384),
    "chatgpt-4o-latest": (128000, 16384),
    "gpt-4o-mini": (128000, 16384),
    "o1-preview": (128000, 32768),
    "o1-mini": (128000, 65536),
    "gpt-4-turbo": (128000, 4096),
    "gpt-4-turbo-2024-04-09": (128000, 4096),
    "gpt-4-turbo-preview": (128000, 4096),
    "gpt-4-0125-preview": (128000, 4096),
    "gpt-4-1106-preview": (128000, 4096),
    "gpt-4-32k": (32600, 4000),
    "gpt-4": (8000, 2000),
    "gpt-3.5-turbo-16k": (16300, 3000),
}
_GPT35_LIMITS = (16385, 4096)
_DEFAULT_LIMITS = (4000, 1000)


@dataclass(frozen=True)
class TokenLimits:
    max_tokens: int
    response_tokens: int

    @property
    def request_tokens(self) -> int:
        return self.max_tokens - self.response_tokens - _REQUEST_MARGIN

    @classmethod
    def for_model(cls, model: str) -> TokenLimits:
        if model in _MODEL_LIMITS:
            max_tokens, response_tokens = _MODEL_LIMITS[model]
        elif model.startswith("gpt-3.5-turbo"):
            max_tokens, response_tokens = _GPT35_LIMITS
        else:
            max_tokens, response_tokens = _DEFAULT_LIMITS
        return cls(max_tokens=max_tokens, response_tokens=response_tokens)

    def __str__(self) -> str:
        return (
            f"max_tokens={self.max_tokens}, request_tokens={self.request_tokens}, "
            f"response_tokens={self.response_tokens}"
        )


@lru_cache(maxsize=None)
def _get_encoding(model: str | None):
    """Get tiktoken encoding for model with safe fallbacks.

    Falls back to a generic encoding when the model is unknown to tiktoken,
    which is always the case for Claude models.
    """
    if model:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            pass
    try:
        return tiktoken.get_encoding("o200k_base")
    except ValueError:
        return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str, model: str | None = None) -> int:
    if not text:
        return 0
    # Special-token text (e.g. "<|endoftext|>") appearing in a diff is counted
    # as ordinary characters rather than rejected.
    return len(_get_encoding(model).encode(text, disallowed_special=()))
