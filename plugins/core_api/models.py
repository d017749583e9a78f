# plugins/core_api/models.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from plugins.core_budget.budget import TokenBudget
from plugins.core_lorebook.models import ActivationRecord, LorebookDebugEntry
from plugins.core_memoria.models import SearchSource
from plugins.core_prompt.models import PreparedTurn
from plugins.core_triggers.models import Alert, Injection


class PromptMessage(BaseModel):
    id: str
    role: str
    content: str
    name: Optional[str] = None


class MemoryHit(BaseModel):
    id: str
    content: str
    source: SearchSource
    score: float


class ContextPreview(BaseModel):
    """What the model would receive for a turn, and why."""
    messages: List[PromptMessage] = Field(default_factory=list)
    budget: Optional[TokenBudget] = None
    lorebook_debug: List[LorebookDebugEntry] = Field(default_factory=list)
    lorebook_tokens: int = 0
    lorebook_budget_exceeded: bool = False
    memory: List[MemoryHit] = Field(default_factory=list)
    injections: List[Injection] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list)
    stop_generation: bool = False
    history_dropped: int = 0
    activation_history: Dict[str, ActivationRecord] = Field(default_factory=dict)

    @classmethod
    def from_prepared(cls, prepared: PreparedTurn) -> "ContextPreview":
        return cls(
            messages=[PromptMessage(id=m.id, role=m.role, content=m.content, name=m.name) for m in prepared.messages],
            budget=prepared.budget,
            lorebook_debug=prepared.lorebook.debug_log,
            lorebook_tokens=prepared.lorebook.total_tokens,
            lorebook_budget_exceeded=prepared.lorebook.budget_exceeded,
            memory=[
                MemoryHit(id=r.entry.id, content=r.entry.content, source=r.source, score=r.score)
                for r in prepared.memory
            ],
            injections=prepared.trigger_context.injections,
            alerts=prepared.alerts,
            stop_generation=prepared.stop_generation,
            history_dropped=prepared.history_dropped,
            activation_history=prepared.activation_history,
        )


class HealthReport(BaseModel):
    status: str = "ok"
    providers: List[str] = Field(default_factory=list)
    plugins: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
