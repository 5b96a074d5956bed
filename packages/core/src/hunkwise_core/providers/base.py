"""Base LLM provider implementing the Template Method pattern.

All providers share the same call algorithm:
    chat() → budget check → call_with_retry() → _call_api()   ← only this differs per provider

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

The SDK clients are created with their own retries disabled so the
error-classified policy in hunkwise_core.retry is the only one in effect.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from hunkwise_core.retry import RetryConfig, build_retry_config, call_with_retry
from hunkwise_core.state import TokenLimitError
from hunkwise_core.tokens import TokenLimits, count_tokens

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 120.0


@dataclass(frozen=True)
class ChatOptions:
    system_message: str = ""
    timeout_seconds: Optional[float] = None
    temperature: Optional[float] = None


class BaseProvider(ABC):
    NAME: str = "base"
    MODEL: str = ""
    TEMPERATURE: float = 0.2

    def __init__(
        self,
        model: str | None = None,
        retry_config: RetryConfig | None = None,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
    ):
        self.model = model or self.MODEL
        self.retry_config = retry_config or build_retry_config()
        self.timeout_seconds = timeout_seconds
        self.token_limits = TokenLimits.for_model(self.model)

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def chat(self, message: str, options: ChatOptions | None = None) -> str:
        """Send one prompt and return the model's text.

        Raises TokenLimitError without calling the API when the prompt cannot
        fit the model's request budget, and RetryExhaustedError when the
        retry policy gives up.
        """
        options = options or ChatOptions()
        tokens = count_tokens(options.system_message, self.model) + count_tokens(message, self.model)
        if tokens > self.token_limits.request_tokens:
            raise TokenLimitError(
                f"prompt needs {tokens} tokens, {self.model} allows {self.token_limits.request_tokens}"
            )

        timeout = options.timeout_seconds or self.timeout_seconds
        temperature = self.TEMPERATURE if options.temperature is None else options.temperature
        return call_with_retry(
            lambda: self._call_api(options.system_message, message, temperature, timeout),
            self.retry_config,
            describe=f"{self.__class__.__name__} API",
        )

    def __str__(self) -> str:
        return f"{self.NAME}:{self.model} ({self.token_limits})"

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, temperature: float, timeout: float) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure; call_with_retry classifies the error and
        decides whether to try again.
        """
