"""Thin LiteLLM transport: one chat completion per call, errors as AgentError."""

import os

from .errors import AgentError


class LLMClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.base_url = base_url

    def resolve_model(self, model: str) -> str:
        """OpenAI-compatible endpoints need LiteLLM's ``openai/`` prefix."""
        if self.base_url and "/" not in model:
            return f"openai/{model}"
        return model

    def create_chat_completion(self, payload: dict):
        """Send ``payload`` to the backend and return the raw response."""
        import litellm

        litellm.suppress_debug_info = True

        kwargs = dict(payload)
        if not kwargs.get("model"):
            raise AgentError("no model configured (set 'model' in wader.toml or use --model)")
        kwargs["model"] = self.resolve_model(kwargs["model"])
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["api_base"] = self.base_url

        try:
            return litellm.completion(**kwargs)
        except Exception as e:
            raise AgentError(f"LLM call failed: {e}") from e
