# plugins/core_triggers/models.py
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from plugins.core_lorebook.models import LorebookPosition


# --- 1. Enumerations ---

class TriggerActivation(str, Enum):
    ON_USER_INPUT = "on_user_input"
    BEFORE_GENERATION = "before_generation"
    AFTER_GENERATION = "after_generation"
    ON_DISPLAY = "on_display"
    MANUAL = "manual"


class TriggerScope(str, Enum):
    GLOBAL = "global"
    CHARACTER = "character"


class VariableScope(str, Enum):
    GLOBAL = "global"
    CHAT = "chat"


class ConditionType(str, Enum):
    VARIABLE = "variable"
    MESSAGE_COUNT = "message_count"
    TEXT_MATCH = "text_match"
    REGEX_MATCH = "regex_match"


class ConditionOperator(str, Enum):
    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    CONTAINS = "contains"
    MATCHES = "matches"


class LogicOp(str, Enum):
    AND = "AND"
    OR = "OR"


class RegexPlacement(str, Enum):
    USER_INPUT = "user_input"
    AI_OUTPUT = "ai_output"


# --- 2. Conditions ---

class TriggerCondition(BaseModel):
    type: ConditionType
    field: str = Field(default="", description="Variable key for 'variable' conditions; unused otherwise.")
    operator: ConditionOperator = ConditionOperator.EQ
    value: Any = ""
    logic_op: Optional[LogicOp] = Field(default=None, description="How this condition combines with the result so far. Defaults to AND.")


# --- 3. Effects (closed tagged union) ---

class SetVariableEffect(BaseModel):
    type: Literal["set_variable"] = "set_variable"
    scope: VariableScope = VariableScope.CHAT
    key: str
    value: str = ""
    operator: Literal["=", "+=", "-="] = "="


class InjectPromptEffect(BaseModel):
    type: Literal["inject_prompt"] = "inject_prompt"
    content: str
    position: LorebookPosition = LorebookPosition.BEFORE_HISTORY


class ModifyMessageEffect(BaseModel):
    type: Literal["modify_message"] = "modify_message"
    find: str
    replace: str = ""


class RunRegexEffect(BaseModel):
    type: Literal["run_regex"] = "run_regex"
    rule_id: str


class ShowAlertEffect(BaseModel):
    type: Literal["show_alert"] = "show_alert"
    message: str
    style: Literal["info", "success", "warning", "error"] = "info"


class StopGenerationEffect(BaseModel):
    type: Literal["stop_generation"] = "stop_generation"


class RunTriggerEffect(BaseModel):
    type: Literal["run_trigger"] = "run_trigger"
    trigger_id: str


TriggerEffect = Annotated[
    Union[
        SetVariableEffect,
        InjectPromptEffect,
        ModifyMessageEffect,
        RunRegexEffect,
        ShowAlertEffect,
        StopGenerationEffect,
        RunTriggerEffect,
    ],
    Field(discriminator="type"),
]


# --- 4. Triggers and regex rules ---

class Trigger(BaseModel):
    id: str
    name: str = ""
    enabled: bool = True
    scope: TriggerScope = TriggerScope.GLOBAL
    character_id: Optional[str] = None
    activation: TriggerActivation = TriggerActivation.BEFORE_GENERATION
    conditions: List[TriggerCondition] = Field(default_factory=list)
    effects: List[TriggerEffect] = Field(default_factory=list)
    order: int = 0


class RegexRule(BaseModel):
    id: str
    name: str = ""
    enabled: bool = True
    scope: TriggerScope = TriggerScope.GLOBAL
    character_id: Optional[str] = None
    find_regex: str
    replace_string: str = ""
    placement: List[RegexPlacement] = Field(default_factory=list)
    flags: str = "g"
    order: int = 0


# --- 5. Turn-scoped execution state ---

class Injection(BaseModel):
    content: str
    position: LorebookPosition


class Alert(BaseModel):
    message: str
    style: str = "info"


class TriggerExecutionContext(BaseModel):
    """Mutable state shared by every trigger run at one activation point of one turn."""
    message_content: str = ""
    chat_id: Optional[str] = None
    character_id: Optional[str] = None
    message_count: int = 0
    injections: List[Injection] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list)
    stop_generation: bool = False


def create_trigger_context(
    message_content: str,
    message_count: int,
    chat_id: Optional[str] = None,
    character_id: Optional[str] = None,
) -> TriggerExecutionContext:
    return TriggerExecutionContext(
        message_content=message_content,
        chat_id=chat_id,
        character_id=character_id,
        message_count=message_count,
    )
