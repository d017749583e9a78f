# plugins/core_budget/__init__.py
import logging

from backend.core.contracts import Container, HookManager

from .budget import TokenBudget, allocate_budget, trim_history
from .tokenizers import TokenizerRegistry, HeuristicTokenizer, estimate_tokens

logger = logging.getLogger(__name__)

__all__ = [
    "TokenBudget", "allocate_budget", "trim_history",
    "TokenizerRegistry", "HeuristicTokenizer", "estimate_tokens",
]


def _create_tokenizer_registry() -> TokenizerRegistry:
    return TokenizerRegistry()


def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> registering [core_budget] plugin...")

    container.register("tokenizer_registry", _create_tokenizer_registry, singleton=True)

    logger.info("plugin [core_budget] registered.")
