from __future__ import annotations

from typing import AsyncIterator

from langchain_core.language_models import BaseLanguageModel
from langchain_ollama import OllamaLLM

from common.config import yaml_config
from common.errors import GenerationAborted
from common.logger import get_logger

log = get_logger(__name__)


def load_local_llm() -> BaseLanguageModel:
    """
    Load the answering LLM from the ``llm`` config section.
    """
    cfg = yaml_config.llm

    if cfg.provider == "ollama":
        return OllamaLLM(model=cfg.model_name, temperature=cfg.temperature)
    else:
        raise ValueError(f"Unsupported provider: {cfg.provider}")


async def stream_chunks(llm: BaseLanguageModel, prompt: str) -> AsyncIterator[str]:
    """
    Token stream of one completion. A transport failure part-way through
    surfaces as GenerationAborted so callers keep the partial message.
    """
    emitted = 0
    try:
        async for chunk in llm.astream(prompt):
            text = chunk if isinstance(chunk, str) else getattr(chunk, "content", str(chunk))
            if text:
                emitted += len(text)
                yield text
    except Exception as e:
        log.error("LLM stream failed after %d characters: %s", emitted, e)
        raise GenerationAborted(str(e)) from e
