# plugins/core_api/tests/test_context_api.py

import pytest
from httpx import AsyncClient

from plugins.core_llm.stream import parse_sse
from plugins.core_triggers.models import RegexRule, Trigger

pytestmark = [pytest.mark.asyncio, pytest.mark.e2e]


def _turn(text: str, **extra) -> dict:
    return {"chat_id": "chat-1", "messages": [{"id": "u1", "role": "user", "content": text}], **extra}


DRAGON_BOOK = {
    "lorebook": {"id": "lb1", "name": "World"},
    "entries": [{"id": "e1", "lorebook_id": "lb1", "keys": ["dragon"], "content": "Dragons hoard gold."}],
}


def _events(body: str):
    return [parse_sse(block) for block in body.split("\n\n") if block.strip()]


class TestSystemPlatformAPI:
    async def test_plugins_manifest_lists_loaded_plugins_in_order(self, client: AsyncClient):
        response = await client.get("/api/plugins/manifest")

        assert response.status_code == 200
        names = [m["name"] for m in response.json()]
        assert names[0] == "core_logging"
        for name in ("core_budget", "core_lorebook", "core_triggers", "core_memoria", "core_llm", "core_prompt", "core_api"):
            assert name in names
        assert names.index("core_llm") < names.index("core_prompt") < names.index("core_api")

    async def test_hooks_manifest(self, client: AsyncClient):
        response = await client.get("/api/system/hooks/manifest")

        assert response.status_code == 200
        hooks = response.json()["hooks"]
        assert "collect_api_routers" in hooks
        assert "services_post_register" in hooks


class TestContextAPI:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/context/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "mock" in data["providers"]
        assert "core_prompt" in data["plugins"]
        assert data["details"]["vector_count"] == 0

    async def test_models(self, client: AsyncClient):
        response = await client.get("/api/context/models")
        assert response.status_code == 200
        assert any(m["id"] == "mock-model-1" for m in response.json())

    async def test_preview_dragon_turn(self, client: AsyncClient):
        response = await client.post("/api/context/preview", json=_turn("Tell me about the dragon", lorebooks=[DRAGON_BOOK]))

        assert response.status_code == 200
        data = response.json()
        assert [m["id"] for m in data["messages"]] == ["system", "lorebook", "u1"]
        assert data["messages"][1] == {"id": "lorebook", "role": "system", "content": "Dragons hoard gold.", "name": None}
        assert data["lorebook_debug"][0]["reason"] == 'Matched key: "dragon"'
        assert data["budget"]["total"] == 8192
        assert data["stop_generation"] is False

    async def test_preview_rejects_malformed_requests(self, client: AsyncClient):
        response = await client.post("/api/context/preview", json={"messages": [{"role": "narrator", "content": "x"}]})
        assert response.status_code == 422

    async def test_stream_emits_tokens_then_done(self, client: AsyncClient):
        response = await client.post("/api/context/stream", json=_turn("Hello"))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _events(response.text)
        assert events[-1].type == "done"
        text = "".join(e.value for e in events if e.type == "token")
        assert text.startswith("Hello! I'm a mock assistant")

    async def test_stream_unknown_provider_is_an_error_event(self, client: AsyncClient, settings):
        settings.llm.debug_mode = False
        response = await client.post("/api/context/stream", json=_turn("Hello", provider_id="missing"))

        events = _events(response.text)
        assert [e.type for e in events] == ["error"]
        assert events[0].message == "Provider not found: missing"

    async def test_stop_generation_trigger_via_stores(self, client: AsyncClient, container):
        container.resolve("trigger_store").save(Trigger.model_validate({
            "id": "halt", "name": "halt", "activation": "on_user_input",
            "conditions": [{"type": "text_match", "operator": "contains", "value": "forbidden"}],
            "effects": [{"type": "show_alert", "message": "Blocked", "style": "warning"}, {"type": "stop_generation"}],
        }))

        preview = (await client.post("/api/context/preview", json=_turn("a forbidden topic"))).json()
        assert preview["stop_generation"] is True
        assert preview["alerts"] == [{"message": "Blocked", "style": "warning"}]
        assert preview["messages"] == []

        events = _events((await client.post("/api/context/stream", json=_turn("a forbidden topic"))).text)
        assert [e.type for e in events] == ["done"]

    async def test_user_input_regex_rules_apply(self, client: AsyncClient, container):
        container.resolve("regex_rule_store").save(RegexRule(
            id="r1", name="censor", find_regex="darn", replace_string="****", flags="gi", placement=["user_input"],
        ))

        preview = (await client.post("/api/context/preview", json=_turn("Darn it"))).json()
        assert preview["messages"][-1]["content"] == "**** it"
