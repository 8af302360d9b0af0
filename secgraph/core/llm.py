import logging
from typing import Any, Optional
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from langchain_groq import ChatGroq
from secgraph.core.config import Settings
from secgraph.core.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class LLMFactory:
    @staticmethod
    def create_llm(
        model_type: str = "openai",
        model_id: str = "gpt-4o-mini",
        temperature: float = 0,
        max_tokens: Optional[int] = None,
        timeout: Optional[int] = None,
        max_retries: int = 2,
        api_key: Optional[str] = None
    ) -> BaseChatModel:
        if model_type == "openai":
            return ChatOpenAI(
                model=model_id,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout,
                max_retries=max_retries,
                api_key=api_key
            )
        elif model_type == "groq":
            return ChatGroq(
                model=model_id,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout,
                max_retries=max_retries,
                api_key=api_key
            )
        else:
            raise ValueError(f"Unsupported model type: {model_type}")


class GenerationClient:
    """
    Text-in/text-out wrapper around a chat model.

    Calls are retried with exponential backoff (bounded by ``max_attempts``)
    before the failure is reported as UpstreamUnavailableError.
    """

    def __init__(self, llm: BaseChatModel, max_attempts: int = 3):
        self.llm = llm
        self.max_attempts = max(1, max_attempts)
        self._runnable = llm.with_retry(
            stop_after_attempt=self.max_attempts,
            wait_exponential_jitter=True,
        ) if self.max_attempts > 1 else llm

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationClient":
        api_key = settings.openai_api_key if settings.llm_provider == "openai" else settings.groq_api_key
        llm = LLMFactory.create_llm(
            model_type=settings.llm_provider,
            model_id=settings.llm_model_id,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
            max_retries=0,
            api_key=api_key,
        )
        return cls(llm, max_attempts=settings.llm_max_attempts)

    def generate(self, prompt: Any) -> str:
        """
        Run a prompt (PromptValue or message list) and return the response text.

        Raises:
            UpstreamUnavailableError: If the model call fails after all attempts
        """
        try:
            result = self._runnable.invoke(prompt)
        except Exception as e:
            raise UpstreamUnavailableError(f"Generation call failed: {str(e)}") from e

        content = result.content if hasattr(result, "content") else result
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return str(content or "")
