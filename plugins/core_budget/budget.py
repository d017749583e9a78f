# plugins/core_budget/budget.py

import logging
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from backend.core.contracts import ChatMessage, MessageRole
from .tokenizers import HeuristicTokenizer

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], int]

_default_tokenizer = HeuristicTokenizer()

DEFAULT_SYSTEM_TOKENS = 200
DEFAULT_PERSONA_TOKENS = 300
DEFAULT_MEMORY_TOKENS = 0


class TokenBudget(BaseModel):
    """How the context window is split between the sections of one prompt."""
    total: int = Field(..., ge=0)
    system: int = Field(..., ge=0)
    persona: int = Field(..., ge=0)
    memory: int = Field(..., ge=0)
    history: int = Field(..., ge=0)
    response: int = Field(..., ge=0)
    reserves: Dict[str, int] = Field(default_factory=dict, description="Extra named allocations taken out of history.")


def allocate_budget(
    context_window: int,
    max_response_tokens: int,
    system_tokens: Optional[int] = None,
    persona_tokens: Optional[int] = None,
    memory_tokens: Optional[int] = None,
    reserves: Optional[Dict[str, int]] = None,
) -> TokenBudget:
    """
    history = context_window - response - system - persona - memory - reserves,
    floored at zero. Negative inputs are treated as zero.
    """
    total = max(0, context_window)
    response = max(0, max_response_tokens)
    system = max(0, DEFAULT_SYSTEM_TOKENS if system_tokens is None else system_tokens)
    persona = max(0, DEFAULT_PERSONA_TOKENS if persona_tokens is None else persona_tokens)
    memory = max(0, DEFAULT_MEMORY_TOKENS if memory_tokens is None else memory_tokens)
    clean_reserves = {name: max(0, value) for name, value in (reserves or {}).items()}

    history = max(0, total - response - system - persona - memory - sum(clean_reserves.values()))

    return TokenBudget(
        total=total,
        system=system,
        persona=persona,
        memory=memory,
        history=history,
        response=response,
        reserves=clean_reserves,
    )


def trim_history(
    messages: Sequence[ChatMessage],
    budget: int,
    token_counter: Optional[TokenCounter] = None,
) -> List[ChatMessage]:
    """
    Fit a conversation into `budget` tokens.

    A budget of zero or less yields an empty list, system messages included.
    When everything fits the input comes back unchanged. Otherwise all system
    messages are kept and charged first, then the newest non-system messages
    are taken while they fit; the walk stops at the first one that does not.
    The result is the system messages followed by the kept messages in their
    original order.
    """
    if budget <= 0:
        return []

    count = token_counter or _default_tokenizer.count
    costs = [count(m.content) for m in messages]

    if sum(costs) <= budget:
        return list(messages)

    system_messages: List[ChatMessage] = []
    conversation: List[tuple] = []
    system_cost = 0
    for message, cost in zip(messages, costs):
        if message.role == MessageRole.SYSTEM:
            system_messages.append(message)
            system_cost += cost
        else:
            conversation.append((message, cost))

    available = budget - system_cost
    kept: List[ChatMessage] = []
    for message, cost in reversed(conversation):
        if cost > available:
            break
        available -= cost
        kept.append(message)
    kept.reverse()

    logger.debug(
        f"History trimmed to {len(system_messages) + len(kept)} of {len(messages)} messages "
        f"(budget={budget}, system_cost={system_cost})."
    )
    return system_messages + kept
