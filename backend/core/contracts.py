# backend/core/contracts.py

from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field, ConfigDict

# --- 1. Core service interfaces and type aliases ---

# Data type threaded through filter hooks
T = TypeVar('T')

# Signature every plugin's register_plugin must follow
PluginRegisterFunc = Callable[['Container', 'HookManager'], None]

# Plugins depend on these interfaces, never on the concrete implementations
class Container(ABC):
    @abstractmethod
    def register(self, name: str, factory: Callable, singleton: bool = True) -> None: raise NotImplementedError
    @abstractmethod
    def resolve(self, name: str) -> Any: raise NotImplementedError
    @abstractmethod
    def has(self, name: str) -> bool: raise NotImplementedError

class HookManager(ABC):
    @abstractmethod
    def add_implementation(self, hook_name: str, implementation: Callable, priority: int = 10, plugin_name: str = "<unknown>"): raise NotImplementedError
    @abstractmethod
    async def trigger(self, hook_name: str, **kwargs: Any) -> None: raise NotImplementedError
    @abstractmethod
    async def filter(self, hook_name: str, data: T, **kwargs: Any) -> T: raise NotImplementedError
    @abstractmethod
    async def decide(self, hook_name: str, **kwargs: Any) -> Optional[Any]: raise NotImplementedError


# --- 2. Well-known hook names ---

class Hooks:
    """Names of the hooks the platform and the core plugins fire."""
    SERVICES_POST_REGISTER = "services_post_register"
    COLLECT_API_ROUTERS = "collect_api_routers"
    APP_STARTUP_COMPLETE = "app_startup_complete"
    APP_SHUTDOWN = "app_shutdown"
    BEFORE_PROMPT_ASSEMBLY = "before_prompt_assembly"
    AFTER_GENERATION = "after_generation"


# --- 3. Shared conversation models ---

class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One message of a conversation, as stored by the caller and sent to the model."""
    id: str = Field(default_factory=lambda: uuid4().hex)
    role: MessageRole
    content: str = ""
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model_config = ConfigDict(use_enum_values=True)

    @classmethod
    def system(cls, content: str, id: Optional[str] = None) -> "ChatMessage":
        if id is None:
            return cls(role=MessageRole.SYSTEM, content=content)
        return cls(id=id, role=MessageRole.SYSTEM, content=content)

    def to_wire(self) -> dict:
        """The {role, content} shape chat-completion endpoints expect."""
        data = {"role": self.role, "content": self.content}
        if self.name:
            data["name"] = self.name
        return data
