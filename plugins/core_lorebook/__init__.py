# plugins/core_lorebook/__init__.py
import logging

from backend.core.contracts import Container, HookManager

from .activation import LorebookActivationEngine, activate_lorebooks, record_activations
from .models import (
    Lorebook, LorebookEntry, LorebookPosition, LoadedLorebook,
    ActivationContext, ActivationRecord, LorebookPromptResult,
)

logger = logging.getLogger(__name__)


def _create_lorebook_engine(container: Container) -> LorebookActivationEngine:
    settings = container.resolve("settings")
    return LorebookActivationEngine(default_recursion_steps=settings.lorebook.default_recursion_steps)


def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> registering [core_lorebook] plugin...")

    container.register("lorebook_engine", _create_lorebook_engine, singleton=True)

    logger.info("plugin [core_lorebook] registered.")
