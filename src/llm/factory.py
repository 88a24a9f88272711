from typing import Optional
import os

from langchain_openai import ChatOpenAI
from langchain_core.language_models.chat_models import BaseChatModel

from src.config.common_settings import OPENAI_API_KEY, OPENAI_MODEL_NAME
from src.utils.logger import logger

DEFAULT_PROVIDER = os.environ.get("DEFAULT_LLM_PROVIDER", "openai").lower()


def create_chat_model(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = 500,
) -> BaseChatModel:
    provider_name = (provider or DEFAULT_PROVIDER).lower()

    if provider_name == "openai":
        api_key = api_key or OPENAI_API_KEY
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY not set")
        model_id = model or OPENAI_MODEL_NAME
        temp = 0.7 if temperature is None else float(temperature)
        logger.debug("LLMFactory: creating OpenAI chat model %s (temperature=%s)", model_id, temp)
        return ChatOpenAI(
            model=model_id,
            api_key=api_key,
            timeout=60,
            max_retries=3,
            temperature=temp,
            max_tokens=max_tokens,
        )

    raise ValueError(f"Unsupported provider: {provider_name}")

