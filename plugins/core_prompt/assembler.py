# plugins/core_prompt/assembler.py

import logging
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from backend.core.contracts import ChatMessage, MessageRole

logger = logging.getLogger(__name__)

DEFAULT_ASSEMBLY_ORDER = ["system", "history", "user"]

# every accepted spelling -> canonical slot name
SLOT_ALIASES: Dict[str, str] = {
    "system": "system",
    "persona": "persona",
    "author_note": "author_note",
    "author": "author_note",
    "memory": "memory",
    "lorebook": "lorebook",
    "world_info": "lorebook",
    "skills": "skills",
    "history": "history",
    "recent": "history",
    "user": "user",
}

# ids of the synthetic system messages built from text slots
SLOT_MESSAGE_IDS: Dict[str, str] = {
    "system": "system",
    "persona": "persona",
    "author_note": "author",
    "memory": "memory",
    "lorebook": "lorebook",
    "skills": "skills",
}


class PromptSlots(BaseModel):
    """Text of the non-conversation parts of a prompt. Empty slots are left out."""
    system: str = ""
    persona: str = ""
    author_note: str = ""
    memory: str = ""
    lorebook: str = ""
    skills: str = ""

    def text(self, slot: str) -> str:
        return getattr(self, slot, "") or ""


def canonical_slot(name: str) -> Optional[str]:
    return SLOT_ALIASES.get(name.strip().lower())


def _insert_before_last(order: List[str], slot: str) -> None:
    if order:
        order.insert(len(order) - 1, slot)
    else:
        order.append(slot)


def resolve_order(order: Optional[Sequence[str]], slots: PromptSlots) -> List[str]:
    """
    Canonical slot names in assembly order. Unknown names are dropped, a
    slot named more than once (aliases included) keeps only its first
    place, and non-empty memory, lorebook and skills slots the order does
    not mention are placed automatically.
    """
    resolved: List[str] = []
    for name in (order if order is not None else DEFAULT_ASSEMBLY_ORDER):
        slot = canonical_slot(name)
        if slot is None:
            logger.debug(f"Ignoring unknown prompt slot '{name}'.")
            continue
        if slot not in resolved:
            resolved.append(slot)

    if slots.memory and "memory" not in resolved:
        _insert_before_last(resolved, "memory")

    if slots.lorebook and "lorebook" not in resolved:
        if "history" in resolved:
            resolved.insert(resolved.index("history"), "lorebook")
        else:
            _insert_before_last(resolved, "lorebook")

    if slots.skills and "skills" not in resolved:
        if "system" in resolved:
            resolved.insert(resolved.index("system") + 1, "skills")
        else:
            resolved.insert(0, "skills")

    return resolved


def _last_user_index(messages: Sequence[ChatMessage]) -> Optional[int]:
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role == MessageRole.USER:
            return i
    return None


def assemble_prompt(
    messages: Sequence[ChatMessage],
    slots: PromptSlots,
    order: Optional[Sequence[str]] = None,
) -> List[ChatMessage]:
    """
    Lay out the final message list.

    Each text slot becomes one system message; `user` is the last user
    message itself and `history` is every other message, in order.
    """
    user_index = _last_user_index(messages)
    assembled: List[ChatMessage] = []

    for slot in resolve_order(order, slots):
        if slot == "history":
            assembled.extend(m for i, m in enumerate(messages) if i != user_index)
        elif slot == "user":
            if user_index is not None:
                assembled.append(messages[user_index])
        else:
            text = slots.text(slot)
            if text:
                assembled.append(ChatMessage.system(text, id=SLOT_MESSAGE_IDS[slot]))

    return assembled
