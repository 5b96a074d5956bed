from __future__ import annotations

from hunkwise_core.providers.base import BaseProvider


class AnthropicProvider(BaseProvider):
    NAME = "anthropic"
    MODEL = "claude-sonnet-4-20250514"
    # Slightly higher than OpenAI's 0.2 for more natural phrasing while
    # keeping the line-range format stable.
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, **kwargs):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'hunkwise[anthropic]'"
            )
        super().__init__(**kwargs)
        self.client = Anthropic(api_key=api_key, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str, temperature: float, timeout: float) -> str:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic.types import TextBlock

        kwargs = {}
        if system_prompt:
            kwargs["system"] = system_prompt
        response = self.client.messages.create(
            model=self.model,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=temperature,
            max_tokens=self.token_limits.response_tokens,
            timeout=timeout,
            **kwargs,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        if not text_blocks:
            raise ValueError("No text content in Anthropic response")
        return "".join(text_blocks).strip()
