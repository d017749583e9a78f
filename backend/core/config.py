# backend/core/config.py

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROMPTLOOM_"


class BudgetSettings(BaseModel):
    context_window: int = Field(default=8192, gt=0, description="Total model context window in tokens.")
    max_response_tokens: int = Field(default=1024, ge=0)
    system_tokens: int = Field(default=200, ge=0)
    persona_tokens: int = Field(default=300, ge=0)
    memory_tokens: int = Field(default=0, ge=0)


class LorebookSettings(BaseModel):
    default_recursion_steps: int = Field(default=3, gt=0, description="Used when no lorebook sets a positive max_recursion_steps.")


class TriggerSettings(BaseModel):
    max_trigger_depth: int = Field(default=5, ge=0)


class MemorySettings(BaseModel):
    default_limit: int = Field(default=10, gt=0)
    min_score: float = Field(default=0.3, ge=0.0)
    recency_window_days: float = Field(default=30.0, gt=0)
    file_memory_dir: Optional[str] = Field(default=None, description="Directory for the markdown memory logs; the file tier is off when unset.")


class EmbeddingSettings(BaseModel):
    provider: str = Field(default="local", description="'openai' for an OpenAI-compatible endpoint, 'local' for hash vectors.")
    base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = None
    model: str = "text-embedding-3-small"
    dimensions: int = Field(default=1536, gt=0)
    max_retries: int = Field(default=3, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)


class LLMSettings(BaseModel):
    debug_mode: bool = Field(default=False, description="Route every request to the mock provider.")
    default_provider: str = "mock"
    model_id: Optional[str] = None
    base_url: Optional[str] = Field(default=None, description="OpenAI-compatible endpoint; registers the `openai_compatible` provider when set.")
    api_key: Optional[str] = None
    temperature: float = 1.0
    max_tokens: int = 2048


class PromptSettings(BaseModel):
    system_prompt: str = "You are a helpful AI assistant."
    assembly_order: List[str] = Field(default_factory=lambda: ["system", "history", "user"])
    user_name: str = "User"
    char_name: str = "Assistant"


class Settings(BaseModel):
    budget: BudgetSettings = Field(default_factory=BudgetSettings)
    lorebook: LorebookSettings = Field(default_factory=LorebookSettings)
    triggers: TriggerSettings = Field(default_factory=TriggerSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    prompt: PromptSettings = Field(default_factory=PromptSettings)


# env suffix -> (section, field)
_ENV_FIELDS: Dict[str, Tuple[str, str]] = {
    "CONTEXT_WINDOW": ("budget", "context_window"),
    "MAX_RESPONSE_TOKENS": ("budget", "max_response_tokens"),
    "SYSTEM_TOKENS": ("budget", "system_tokens"),
    "PERSONA_TOKENS": ("budget", "persona_tokens"),
    "MEMORY_TOKENS": ("budget", "memory_tokens"),
    "LOREBOOK_RECURSION_STEPS": ("lorebook", "default_recursion_steps"),
    "MAX_TRIGGER_DEPTH": ("triggers", "max_trigger_depth"),
    "MEMORY_LIMIT": ("memory", "default_limit"),
    "MEMORY_MIN_SCORE": ("memory", "min_score"),
    "MEMORY_RECENCY_DAYS": ("memory", "recency_window_days"),
    "MEMORY_FILE_DIR": ("memory", "file_memory_dir"),
    "EMBEDDING_PROVIDER": ("embedding", "provider"),
    "EMBEDDING_BASE_URL": ("embedding", "base_url"),
    "EMBEDDING_API_KEY": ("embedding", "api_key"),
    "EMBEDDING_MODEL": ("embedding", "model"),
    "EMBEDDING_DIMENSIONS": ("embedding", "dimensions"),
    "EMBEDDING_MAX_RETRIES": ("embedding", "max_retries"),
    "LLM_DEBUG_MODE": ("llm", "debug_mode"),
    "LLM_PROVIDER": ("llm", "default_provider"),
    "LLM_MODEL": ("llm", "model_id"),
    "LLM_BASE_URL": ("llm", "base_url"),
    "LLM_API_KEY": ("llm", "api_key"),
    "LLM_TEMPERATURE": ("llm", "temperature"),
    "LLM_MAX_TOKENS": ("llm", "max_tokens"),
    "SYSTEM_PROMPT": ("prompt", "system_prompt"),
    "USER_NAME": ("prompt", "user_name"),
    "CHAR_NAME": ("prompt", "char_name"),
}


def _settings_from_env() -> Dict[str, Any]:
    data: Dict[str, Dict[str, Any]] = {}
    for suffix, (section, field_name) in _ENV_FIELDS.items():
        raw = os.getenv(f"{ENV_PREFIX}{suffix}")
        if raw is None or raw == "":
            continue
        data.setdefault(section, {})[field_name] = raw

    order = os.getenv(f"{ENV_PREFIX}ASSEMBLY_ORDER")
    if order:
        data.setdefault("prompt", {})["assembly_order"] = [s.strip() for s in order.split(",") if s.strip()]
    return data


def load_settings(dotenv: bool = True) -> Settings:
    """
    Build Settings from the environment (and a .env file when present).
    Raises pydantic.ValidationError on malformed values.
    """
    if dotenv:
        load_dotenv()
    settings = Settings.model_validate(_settings_from_env())
    logger.debug(f"Settings loaded: context_window={settings.budget.context_window}, "
                 f"llm_debug_mode={settings.llm.debug_mode}")
    return settings
