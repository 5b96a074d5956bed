from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from hunkwise_core.providers.base import BaseProvider


class OpenAIProvider(BaseProvider):
    NAME = "openai"
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, **kwargs):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'hunkwise[openai]'"
            )
        super().__init__(**kwargs)
        self.client = _OpenAI(api_key=api_key, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str, temperature: float, timeout: float) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=self.token_limits.response_tokens,
            timeout=timeout,
        )
        return response.choices[0].message.content or ""
