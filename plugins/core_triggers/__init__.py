# plugins/core_triggers/__init__.py
import logging

from backend.core.contracts import Container, HookManager

from .engine import TriggerEngine, TriggerHooks, execute_triggers, evaluate_conditions
from .models import (
    Trigger, TriggerActivation, TriggerCondition, TriggerExecutionContext,
    RegexRule, RegexPlacement, create_trigger_context,
)
from .regex_rules import apply_regex_rules, validate_regex_rule
from .stores import InMemoryRegexRuleStore, InMemoryTriggerStore, InMemoryVariableStore

logger = logging.getLogger(__name__)


def _create_trigger_engine(container: Container) -> TriggerEngine:
    settings = container.resolve("settings")
    return TriggerEngine(
        variables=container.resolve("variable_store"),
        regex_rules=container.resolve("regex_rule_store"),
        triggers=container.resolve("trigger_store"),
        max_trigger_depth=settings.triggers.max_trigger_depth,
    )


def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> registering [core_triggers] plugin...")

    container.register("variable_store", lambda: InMemoryVariableStore(), singleton=True)
    container.register("regex_rule_store", lambda: InMemoryRegexRuleStore(), singleton=True)
    container.register("trigger_store", lambda: InMemoryTriggerStore(), singleton=True)
    container.register("trigger_engine", _create_trigger_engine, singleton=True)

    logger.info("plugin [core_triggers] registered.")
