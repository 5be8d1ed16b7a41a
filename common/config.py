from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import yaml
from pydantic import BaseModel, Field

from common.settings import settings


class AppConfig(BaseModel):
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")


class ParserConfig(BaseModel):
    max_pending_chars: int = Field(default=1024, ge=8)


class ResolverConfig(BaseModel):
    fuzzy_threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    search_adjacent_pages: bool = True
    window_slack_words: int = Field(default=1, ge=0)


class DocumentsConfig(BaseModel):
    pdf_dir: Path = Path("data/documents")
    cache_dir: Path = Path("data/cache")
    base_url: str = "http://localhost:8000/documents"
    url_template: str | None = None  # e.g. "https://host/docs/{key}.pdf"
    timeout: int = 10
    user_agent: str = "cite-stream/1.0"


class LLMConfig(BaseModel):
    provider: str = "ollama"
    model_name: str = "mistral"
    temperature: float = 0.2


class TagConfig(BaseModel):
    name: str = Field(pattern=r"^[A-Za-z][\w-]*$")
    allowed_attributes: List[str] = Field(default_factory=list)
    required_attributes: List[str] = Field(default_factory=list)
    validators: Dict[str, str] = Field(default_factory=dict)


class GlobalYAMLConfig(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    documents: DocumentsConfig = Field(default_factory=DocumentsConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    tags: List[TagConfig] = Field(default_factory=list)


def load_yaml_config(path: Path = settings.config_path) -> GlobalYAMLConfig:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return GlobalYAMLConfig(**raw)


yaml_config = load_yaml_config()
