# plugins/core_triggers/engine.py
"""
Declarative trigger execution.

A trigger fires at one activation point. Its conditions fold left to right
into a single boolean; when it passes, its effects run in order against the
turn's TriggerExecutionContext. Once `stop_generation` is set nothing further
runs, neither the rest of the effect list nor any later trigger.
`run_trigger` chains to another trigger, bounded by a maximum depth and
by a visited set shared across the whole chain.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Set, Union

from backend.core.patterns import compile_pattern
from .contracts import RegexRuleStore, TriggerStore, VariableStore
from .models import (
    Alert,
    ConditionOperator,
    ConditionType,
    InjectPromptEffect,
    Injection,
    LogicOp,
    ModifyMessageEffect,
    RunRegexEffect,
    RunTriggerEffect,
    SetVariableEffect,
    ShowAlertEffect,
    StopGenerationEffect,
    Trigger,
    TriggerActivation,
    TriggerCondition,
    TriggerExecutionContext,
    VariableScope,
)

logger = logging.getLogger("promptloom.triggers")

DEFAULT_MAX_TRIGGER_DEPTH = 5


@dataclass
class TriggerHooks:
    """Collaborators the engine reads and writes through."""
    variables: VariableStore
    regex_rules: Optional[RegexRuleStore] = None
    triggers: Optional[TriggerStore] = None
    max_trigger_depth: int = DEFAULT_MAX_TRIGGER_DEPTH


# --- 1. Value coercion ---

def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_number(value)
    return str(value)


def to_number(value: Any) -> Optional[float]:
    """Numeric reading of a value; None when it is not a number. Blank text reads as 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if text == "":
            return 0.0
        if "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number):
        return None
    return number


def format_number(number: float) -> str:
    if math.isfinite(number) and number == int(number):
        return str(int(number))
    return str(number)


# --- 2. Conditions ---

def _field_value(condition: TriggerCondition, context: TriggerExecutionContext, hooks: TriggerHooks) -> Union[str, int]:
    if condition.type == ConditionType.VARIABLE:
        # chat scope shadows global; missing reads as empty
        value = hooks.variables.get(VariableScope.CHAT, condition.field, context.chat_id)
        if value is None:
            value = hooks.variables.get(VariableScope.GLOBAL, condition.field)
        return value if value is not None else ""
    if condition.type == ConditionType.MESSAGE_COUNT:
        return context.message_count
    return context.message_content


def _compare(operator: ConditionOperator, field_value: Any, expected: Any) -> bool:
    if operator == ConditionOperator.EQ:
        return to_text(field_value) == to_text(expected)
    if operator == ConditionOperator.NE:
        return to_text(field_value) != to_text(expected)
    if operator == ConditionOperator.CONTAINS:
        return to_text(expected) in to_text(field_value)
    if operator == ConditionOperator.MATCHES:
        return compile_pattern(to_text(expected), "i").test(to_text(field_value))

    left, right = to_number(field_value), to_number(expected)
    if left is None or right is None:
        return False
    if operator == ConditionOperator.GT:
        return left > right
    if operator == ConditionOperator.LT:
        return left < right
    if operator == ConditionOperator.GE:
        return left >= right
    if operator == ConditionOperator.LE:
        return left <= right
    raise ValueError(f"Unknown condition operator: {operator}")


def evaluate_condition(condition: TriggerCondition, context: TriggerExecutionContext, hooks: TriggerHooks) -> bool:
    return _compare(condition.operator, _field_value(condition, context, hooks), condition.value)


def evaluate_conditions(
    conditions: Sequence[TriggerCondition],
    context: TriggerExecutionContext,
    hooks: TriggerHooks,
) -> bool:
    """
    Left fold: the first condition seeds the result and every later one is
    combined with it through its own logic_op (AND when unset). An empty
    list passes.
    """
    if not conditions:
        return True

    result = evaluate_condition(conditions[0], context, hooks)
    for condition in conditions[1:]:
        value = evaluate_condition(condition, context, hooks)
        if condition.logic_op == LogicOp.OR:
            result = result or value
        else:
            result = result and value
    return result


# --- 3. Effects ---

def _set_variable(effect: SetVariableEffect, context: TriggerExecutionContext, hooks: TriggerHooks) -> None:
    if effect.operator == "=":
        new_value = effect.value
    else:
        current = hooks.variables.get(effect.scope, effect.key, context.chat_id)
        left = to_number(current if current is not None else "0")
        right = to_number(effect.value)
        if left is None or right is None:
            logger.warning(
                f"set_variable '{effect.key}' {effect.operator} {effect.value!r}: "
                f"current value {current!r} is not numeric, variable left unchanged."
            )
            return
        new_value = format_number(left + right if effect.operator == "+=" else left - right)

    hooks.variables.set(effect.scope, effect.key, new_value, context.chat_id)


def _run_regex(effect: RunRegexEffect, context: TriggerExecutionContext, hooks: TriggerHooks) -> None:
    if hooks.regex_rules is None:
        logger.debug(f"run_regex '{effect.rule_id}' ignored: no regex rule store configured.")
        return
    rule = hooks.regex_rules.get(effect.rule_id)
    if rule is None or not rule.enabled:
        return
    pattern = compile_pattern(rule.find_regex, rule.flags)
    context.message_content = pattern.replace(context.message_content, rule.replace_string)


def _run_trigger(
    effect: RunTriggerEffect,
    context: TriggerExecutionContext,
    hooks: TriggerHooks,
    depth: int,
    visited: Set[str],
) -> None:
    if hooks.triggers is None:
        return
    if depth >= hooks.max_trigger_depth:
        logger.warning(f"run_trigger '{effect.trigger_id}' dropped: maximum trigger depth {hooks.max_trigger_depth} reached.")
        return
    child = hooks.triggers.get(effect.trigger_id)
    if child is None:
        return
    execute_triggers([child], child.activation, context, hooks, depth + 1, visited)


def _apply_effects(
    trigger: Trigger,
    context: TriggerExecutionContext,
    hooks: TriggerHooks,
    depth: int,
    visited: Set[str],
) -> None:
    for effect in trigger.effects:
        if isinstance(effect, SetVariableEffect):
            _set_variable(effect, context, hooks)
        elif isinstance(effect, InjectPromptEffect):
            context.injections.append(Injection(content=effect.content, position=effect.position))
        elif isinstance(effect, ModifyMessageEffect):
            context.message_content = compile_pattern(effect.find, "g").replace(context.message_content, effect.replace)
        elif isinstance(effect, RunRegexEffect):
            _run_regex(effect, context, hooks)
        elif isinstance(effect, ShowAlertEffect):
            context.alerts.append(Alert(message=effect.message, style=effect.style))
        elif isinstance(effect, StopGenerationEffect):
            context.stop_generation = True
            logger.info(f"Trigger '{trigger.id}' stopped generation.")
        elif isinstance(effect, RunTriggerEffect):
            _run_trigger(effect, context, hooks, depth, visited)
        else:
            raise TypeError(f"Unsupported trigger effect: {type(effect).__name__}")

        # a chained trigger may have set it too
        if context.stop_generation:
            return


# --- 4. Entry points ---

def execute_triggers(
    triggers: Sequence[Trigger],
    activation: TriggerActivation,
    context: TriggerExecutionContext,
    hooks: TriggerHooks,
    depth: int = 0,
    visited: Optional[Set[str]] = None,
) -> TriggerExecutionContext:
    """
    Run every enabled trigger bound to `activation`, in ascending order.
    Returns the same (mutated) context.
    """
    if visited is None:
        visited = set()

    for trigger in sorted(triggers, key=lambda t: t.order):
        if context.stop_generation:
            break
        if trigger.id in visited:
            continue
        visited.add(trigger.id)

        if not trigger.enabled or trigger.activation != activation:
            continue
        if not evaluate_conditions(trigger.conditions, context, hooks):
            continue

        logger.debug(f"Trigger '{trigger.id}' fired at {TriggerActivation(activation).value} (depth {depth}).")
        _apply_effects(trigger, context, hooks, depth, visited)

    return context


class TriggerEngine:
    """Container-facing wrapper binding the collaborators once."""

    def __init__(
        self,
        variables: VariableStore,
        regex_rules: Optional[RegexRuleStore] = None,
        triggers: Optional[TriggerStore] = None,
        max_trigger_depth: int = DEFAULT_MAX_TRIGGER_DEPTH,
    ):
        self.hooks = TriggerHooks(
            variables=variables,
            regex_rules=regex_rules,
            triggers=triggers,
            max_trigger_depth=max_trigger_depth,
        )

    def execute(
        self,
        triggers: Sequence[Trigger],
        activation: TriggerActivation,
        context: TriggerExecutionContext,
    ) -> TriggerExecutionContext:
        return execute_triggers(triggers, activation, context, self.hooks)

    def run_for(self, activation: TriggerActivation, context: TriggerExecutionContext) -> TriggerExecutionContext:
        """Run the stored triggers visible to the context's character."""
        if self.hooks.triggers is None:
            return context
        return self.execute(self.hooks.triggers.list(context.character_id), activation, context)
