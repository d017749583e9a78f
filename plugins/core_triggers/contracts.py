# plugins/core_triggers/contracts.py
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import RegexPlacement, RegexRule, Trigger, VariableScope


class VariableStore(ABC):
    """Key/value variables. Values are strings; chat-scoped keys are partitioned by chat id."""

    @abstractmethod
    def get(self, scope: VariableScope, key: str, chat_id: Optional[str] = None) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def set(self, scope: VariableScope, key: str, value: str, chat_id: Optional[str] = None) -> None:
        raise NotImplementedError


class RegexRuleStore(ABC):
    @abstractmethod
    def get(self, rule_id: str) -> Optional[RegexRule]:
        raise NotImplementedError

    @abstractmethod
    def list(self, placement: Optional[RegexPlacement] = None, character_id: Optional[str] = None) -> List[RegexRule]:
        """Enabled rules visible to the character, sorted by order."""
        raise NotImplementedError


class TriggerStore(ABC):
    @abstractmethod
    def get(self, trigger_id: str) -> Optional[Trigger]:
        raise NotImplementedError

    @abstractmethod
    def list(self, character_id: Optional[str] = None) -> List[Trigger]:
        """Global triggers plus those bound to the character, sorted by order."""
        raise NotImplementedError
