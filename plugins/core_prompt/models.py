# plugins/core_prompt/models.py
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from backend.core.contracts import ChatMessage
from plugins.core_budget.budget import TokenBudget
from plugins.core_lorebook.models import (
    ActivationRecord, CharacterFields, LoadedLorebook, LorebookPromptResult,
)
from plugins.core_memoria.models import MemoryScope, MemorySearchResult
from plugins.core_triggers.models import Alert, TriggerExecutionContext
from .assembler import PromptSlots


class TurnRequest(BaseModel):
    """Everything the caller knows about one chat turn. `messages` ends with the new user message."""
    messages: List[ChatMessage] = Field(default_factory=list)
    chat_id: Optional[str] = None
    character_id: Optional[str] = None

    # prompt text; None falls back to the configured system prompt
    system_prompt: Optional[str] = None
    persona: str = ""
    author_note: str = ""
    skills: str = ""
    character_fields: Optional[CharacterFields] = None
    assembly_order: Optional[List[str]] = None
    user_name: Optional[str] = None
    char_name: Optional[str] = None

    lorebooks: List[LoadedLorebook] = Field(default_factory=list)
    current_turn: Optional[int] = None
    activation_history: Optional[Dict[str, ActivationRecord]] = None

    use_memory: bool = True
    memory_scope: Optional[MemoryScope] = None
    memory_source_id: Optional[str] = None

    provider_id: Optional[str] = None
    model_id: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    context_window: Optional[int] = Field(default=None, gt=0)


class PreparedTurn(BaseModel):
    """The prompt of a turn, ready to send, plus what went into it."""
    messages: List[ChatMessage] = Field(default_factory=list)
    slots: PromptSlots = Field(default_factory=PromptSlots)
    budget: Optional[TokenBudget] = None
    lorebook: LorebookPromptResult = Field(default_factory=LorebookPromptResult)
    memory: List[MemorySearchResult] = Field(default_factory=list)
    trigger_context: TriggerExecutionContext = Field(default_factory=TriggerExecutionContext)
    activation_history: Dict[str, ActivationRecord] = Field(default_factory=dict)
    history_dropped: int = 0
    model_id: Optional[str] = None

    @property
    def stop_generation(self) -> bool:
        return self.trigger_context.stop_generation

    @property
    def alerts(self) -> List[Alert]:
        return self.trigger_context.alerts


class TurnResult(BaseModel):
    """Filled in while a turn streams; complete once the stream has ended."""
    prepared: Optional[PreparedTurn] = None
    raw_text: str = ""
    text: str = ""
    error: Optional[str] = None
    stopped: bool = False
    alerts: List[Alert] = Field(default_factory=list)
