# plugins/core_prompt/__init__.py
import logging

from backend.core.contracts import Container, HookManager

from .assembler import PromptSlots, assemble_prompt, resolve_order
from .macros import MacroContext, expand_macros, expand_macros_in_object
from .models import PreparedTurn, TurnRequest, TurnResult
from .pipeline import ChatPipeline

logger = logging.getLogger(__name__)


def _create_chat_pipeline(container: Container) -> ChatPipeline:
    return ChatPipeline(
        settings=container.resolve("settings"),
        tokenizers=container.resolve("tokenizer_registry"),
        lorebook_engine=container.resolve("lorebook_engine"),
        trigger_engine=container.resolve("trigger_engine"),
        providers=container.resolve("provider_registry"),
        regex_rules=container.resolve("regex_rule_store"),
        memory_search=container.resolve("memory_search"),
        hook_manager=container.resolve("hook_manager"),
    )


def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> registering [core_prompt] plugin...")

    container.register("chat_pipeline", _create_chat_pipeline, singleton=True)

    logger.info("plugin [core_prompt] registered.")
