"""
Text generation providers.

A provider knows one remote service's wire format: how to wrap a prompt in a
request envelope, how to pull the generated text out of a response, and how
to read a "model is loading" wait hint. Transport, retry and error handling
live in the generation client.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from storywriter.models.generation import GenerationParameters
from storywriter.utils.logging import LogCategory


class ProviderResponseError(Exception):
    """Response body did not have the expected shape."""
    pass


class TextGenerationProvider(ABC):
    """Abstract base class for text generation providers."""

    name: str = "provider"
    category: LogCategory = LogCategory.SYSTEM

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        parameters: Optional[GenerationParameters] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.parameters = parameters or GenerationParameters()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @abstractmethod
    def build_request(self, prompt: str) -> Dict[str, Any]:
        """Wrap a prompt in the provider's request envelope."""
        pass

    @abstractmethod
    def parse_response(self, payload: Any) -> str:
        """
        Extract generated text from a successful response body.

        Raises:
            ProviderResponseError: If the payload is malformed or the text is empty
        """
        pass

    def wait_hint(self, status_code: int, payload: Any) -> Optional[float]:
        """Seconds the provider asks us to wait before retrying, if any."""
        return None


class HuggingFaceProvider(TextGenerationProvider):
    """
    HuggingFace inference API.

    Request: ``{"inputs": str, "parameters": {...}}``
    Response: ``[{"generated_text": str}, ...]``
    A 503 with ``estimated_time`` means the model is still loading.
    """

    name = "huggingface"
    category = LogCategory.HUGGINGFACE

    def format_prompt(self, prompt: str) -> str:
        return f"<s>[INST] {prompt} [/INST]"

    def build_request(self, prompt: str) -> Dict[str, Any]:
        return {
            "inputs": self.format_prompt(prompt),
            "parameters": self.parameters.model_dump(),
        }

    def parse_response(self, payload: Any) -> str:
        if not isinstance(payload, list) or not payload:
            raise ProviderResponseError("Empty or invalid response received")

        first = payload[0]
        text = first.get("generated_text") if isinstance(first, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise ProviderResponseError("Empty or invalid response received")

        return text.strip()

    def wait_hint(self, status_code: int, payload: Any) -> Optional[float]:
        if status_code != 503 or not isinstance(payload, dict):
            return None

        estimated = payload.get("estimated_time")
        if isinstance(estimated, bool) or not isinstance(estimated, (int, float)):
            return None
        if estimated < 0:
            return None
        return float(estimated)


class TogetherAIProvider(TextGenerationProvider):
    """
    Together AI chat completions API.

    Request: ``{"model": str, "messages": [...], "max_tokens": int, ...}``
    Response: ``{"choices": [{"message": {"content": str}}]}``
    """

    name = "together_ai"
    category = LogCategory.TOGETHER_AI

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        model: str = "meta-llama/Meta-Llama-3.1-70B-Instruct",
        parameters: Optional[GenerationParameters] = None,
    ):
        super().__init__(api_url, api_key, parameters)
        self.model = model

    def build_request(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.parameters.max_new_tokens,
            "temperature": self.parameters.temperature,
            "top_p": self.parameters.top_p,
        }

    def parse_response(self, payload: Any) -> str:
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ProviderResponseError("Response is missing choices[0].message.content") from None

        if not isinstance(content, str) or not content.strip():
            raise ProviderResponseError("Empty completion received")

        return content.strip()


def create_provider(settings) -> TextGenerationProvider:
    """
    Build the provider selected by GENERATION_PROVIDER.

    Args:
        settings: Application settings

    Returns:
        Configured provider instance

    Raises:
        ValueError: If the provider name is unknown
    """
    provider = settings.generation_provider.lower()

    if provider == "huggingface":
        return HuggingFaceProvider(
            api_url=settings.huggingface_api_url,
            api_key=settings.huggingface_api_key,
        )
    if provider in ("together", "together_ai"):
        return TogetherAIProvider(
            api_url=settings.together_api_url,
            api_key=settings.together_api_key,
            model=settings.together_model,
        )

    raise ValueError(f"Unknown generation provider: {settings.generation_provider}")
