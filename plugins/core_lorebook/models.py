# plugins/core_lorebook/models.py
from enum import Enum
from typing import List, Dict, Optional

from pydantic import BaseModel, Field, ConfigDict

from backend.core.contracts import ChatMessage


class LorebookPosition(str, Enum):
    BEFORE_SYSTEM = "before_system"
    AFTER_SYSTEM = "after_system"
    BEFORE_PERSONA = "before_persona"
    AFTER_PERSONA = "after_persona"
    BEFORE_AUTHOR = "before_author"
    AFTER_AUTHOR = "after_author"
    BEFORE_HISTORY = "before_history"
    AFTER_HISTORY = "after_history"


class Lorebook(BaseModel):
    id: str
    name: str
    description: str = ""
    scan_depth: int = Field(default=5, ge=0, description="How many recent messages the caller should pass in for scanning.")
    recursive_scan: bool = Field(default=True, description="Whether content of activated entries may activate further entries.")
    case_sensitive: bool = False
    match_whole_words: bool = False
    use_group_scoring: bool = False
    budget_tokens: int = Field(default=2048, ge=0, description="Maximum estimated tokens this lorebook may contribute per pass.")
    min_activations: int = Field(default=0, ge=0)
    max_recursion_steps: int = Field(default=3, ge=0)


class LorebookEntry(BaseModel):
    id: str
    lorebook_id: str
    keys: List[str] = Field(default_factory=list)
    secondary_keys: List[str] = Field(default_factory=list)
    content: str = ""
    enabled: bool = True
    position: LorebookPosition = LorebookPosition.BEFORE_HISTORY
    insertion_order: int = 100
    case_sensitive: bool = False
    match_whole_words: bool = False
    regex: bool = False
    constant: bool = False
    selective: bool = False
    exclude_recursion: bool = False
    group_id: Optional[str] = None
    cooldown_turns: Optional[int] = None
    delay_turns: Optional[int] = None
    sticky_turns: Optional[int] = None
    model_config = ConfigDict(frozen=True)


class LoadedLorebook(BaseModel):
    """A lorebook together with its entries, as handed to the activation engine."""
    lorebook: Lorebook
    entries: List[LorebookEntry] = Field(default_factory=list)


class CharacterFields(BaseModel):
    description: Optional[str] = None
    personality: Optional[str] = None
    scenario: Optional[str] = None
    system_prompt: Optional[str] = None


class ActivationRecord(BaseModel):
    last_activated_turn: int


class ActivationContext(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    character_fields: Optional[CharacterFields] = None
    author_note: Optional[str] = None
    current_turn: Optional[int] = None
    activation_history: Optional[Dict[str, ActivationRecord]] = None


class LorebookDebugEntry(BaseModel):
    entry_id: str
    lorebook_name: str
    keys: List[str]
    matched_key: str
    position: LorebookPosition
    reason: str
    included: bool = True


def _empty_sections() -> Dict[str, List[str]]:
    return {position.value: [] for position in LorebookPosition}


class LorebookPromptResult(BaseModel):
    # keyed by LorebookPosition value
    sections: Dict[str, List[str]] = Field(default_factory=_empty_sections)
    total_tokens: int = 0
    activated_count: int = 0
    activated_entry_ids: List[str] = Field(default_factory=list)
    debug_log: List[LorebookDebugEntry] = Field(default_factory=list)
    budget_exceeded: bool = False

    def section_text(self, position: LorebookPosition) -> str:
        return format_lorebook_section(self.sections.get(LorebookPosition(position).value, []))


def format_lorebook_section(contents: List[str]) -> str:
    return "\n\n".join(contents)
