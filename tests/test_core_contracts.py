# tests/test_core_contracts.py

from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from backend.container import Container
from backend.core.contracts import ChatMessage, MessageRole
from backend.core.dependencies import Service
from backend.core.errors import PromptloomError, ServiceNotFoundError


class TestChatMessage:
    def test_defaults(self):
        message = ChatMessage(role="user", content="Hi")

        assert message.role == "user"
        assert len(message.id) == 32
        assert message.created_at.tzinfo is not None

    def test_unknown_role_is_rejected(self):
        with pytest.raises(ValidationError):
            ChatMessage(role="narrator", content="x")

    def test_system_helper(self):
        assert ChatMessage.system("Be kind.", id="system").model_dump(include={"id", "role", "content"}) == {
            "id": "system", "role": MessageRole.SYSTEM.value, "content": "Be kind.",
        }

    def test_wire_format(self):
        assert ChatMessage(role="assistant", content="Hello").to_wire() == {"role": "assistant", "content": "Hello"}
        assert ChatMessage(role="user", content="Hi", name="ann").to_wire() == {"role": "user", "content": "Hi", "name": "ann"}


class TestServiceDependency:
    def _request(self, container):
        return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(container=container)))

    def test_resolves_from_the_app_container(self):
        container = Container()
        container.register("greeter", lambda: "hello")

        assert Service("greeter")(self._request(container)) == "hello"

    def test_unknown_service(self):
        with pytest.raises(ServiceNotFoundError) as excinfo:
            Service("missing")(self._request(Container()))

        assert isinstance(excinfo.value, PromptloomError)
        assert excinfo.value.name == "missing"
