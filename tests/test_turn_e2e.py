# tests/test_turn_e2e.py

import pytest

from backend.core.contracts import ChatMessage, Hooks
from plugins.core_lorebook.models import LoadedLorebook, Lorebook, LorebookEntry
from plugins.core_llm.providers.mock import MOCK_RESPONSES
from plugins.core_memoria.models import MemoryEntry
from plugins.core_prompt.models import TurnRequest
from plugins.core_triggers.models import Trigger

pytestmark = pytest.mark.asyncio


def _alice_lorebook() -> LoadedLorebook:
    return LoadedLorebook(
        lorebook=Lorebook(id="lb1", name="People"),
        entries=[LorebookEntry(id="e1", lorebook_id="lb1", keys=["alice"], content="Alice is a cartographer.")],
    )


async def test_full_turn_through_the_container(platform):
    container, hook_manager = platform

    await container.resolve("memory_indexer").add_memory(MemoryEntry(content="Alice likes green tea"))
    triggers = container.resolve("trigger_store")
    triggers.save(Trigger.model_validate({
        "id": "count", "name": "count turns", "activation": "on_user_input",
        "effects": [{"type": "set_variable", "key": "turns", "value": "1", "operator": "+="}],
    }))
    triggers.save(Trigger.model_validate({
        "id": "mood", "name": "mood", "activation": "before_generation",
        "effects": [{"type": "inject_prompt", "content": "Mood: {{char}} is cheerful.", "position": "after_system"}],
    }))

    seen = []

    async def record(result):
        seen.append(result.text)

    hook_manager.add_implementation(Hooks.AFTER_GENERATION, record, plugin_name="test")

    request = TurnRequest(
        chat_id="chat-1",
        messages=[ChatMessage(id="u1", role="user", content="Alice")],
        lorebooks=[_alice_lorebook()],
    )
    result = await container.resolve("chat_pipeline").complete(request)

    assert result.error is None
    assert result.text == MOCK_RESPONSES[0]
    assert seen == [MOCK_RESPONSES[0]]

    sent = container.resolve("provider_registry").get("mock").last_messages
    assert [m.id for m in sent] == ["system", "lorebook", "memory", "u1"]
    assert sent[0].content == "You are a helpful AI assistant.\n\nMood: Assistant is cheerful."
    assert sent[1].content == "Alice is a cartographer."
    assert "Alice likes green tea" in sent[2].content

    assert container.resolve("variable_store").get("chat", "turns", "chat-1") == "1"


async def test_turn_state_is_per_chat(platform):
    container, _ = platform
    container.resolve("trigger_store").save(Trigger.model_validate({
        "id": "count", "name": "count", "activation": "on_user_input",
        "effects": [{"type": "set_variable", "key": "turns", "value": "1", "operator": "+="}],
    }))
    pipeline = container.resolve("chat_pipeline")
    variables = container.resolve("variable_store")

    for chat_id in ("a", "a", "b"):
        await pipeline.prepare(TurnRequest(chat_id=chat_id, messages=[ChatMessage(role="user", content="hi")]))

    assert variables.get("chat", "turns", "a") == "2"
    assert variables.get("chat", "turns", "b") == "1"


async def test_sticky_entries_carry_over_between_turns(platform):
    container, _ = platform
    pipeline = container.resolve("chat_pipeline")
    book = LoadedLorebook(
        lorebook=Lorebook(id="lb1", name="People"),
        entries=[LorebookEntry(id="e1", lorebook_id="lb1", keys=["alice"], content="Alice is a cartographer.", sticky_turns=2)],
    )

    first = await pipeline.prepare(TurnRequest(
        messages=[ChatMessage(role="user", content="Alice?")], lorebooks=[book], current_turn=1, activation_history={},
    ))
    second = await pipeline.prepare(TurnRequest(
        messages=[ChatMessage(role="user", content="Something else")], lorebooks=[book],
        current_turn=2, activation_history=first.activation_history,
    ))

    assert first.lorebook.activated_entry_ids == ["e1"]
    assert second.lorebook.activated_entry_ids == ["e1"]
    assert second.lorebook.debug_log[0].reason == "Sticky entry"
    assert second.activation_history["e1"].last_activated_turn == 1
