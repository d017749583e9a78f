# plugins/core_triggers/stores.py
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from .contracts import RegexRuleStore, TriggerStore, VariableStore
from .models import RegexPlacement, RegexRule, Trigger, TriggerScope, VariableScope


def _visible(scope: TriggerScope, owner: Optional[str], character_id: Optional[str]) -> bool:
    if scope == TriggerScope.GLOBAL:
        return True
    return character_id is not None and owner == character_id


class InMemoryVariableStore(VariableStore):
    def __init__(self):
        self._values: Dict[Tuple[str, str, str], str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(scope: VariableScope, key: str, chat_id: Optional[str]) -> Tuple[str, str, str]:
        scope = VariableScope(scope)
        # global variables ignore the chat id
        partition = "" if scope == VariableScope.GLOBAL else (chat_id or "")
        return scope.value, partition, key

    def get(self, scope: VariableScope, key: str, chat_id: Optional[str] = None) -> Optional[str]:
        with self._lock:
            return self._values.get(self._key(scope, key, chat_id))

    def set(self, scope: VariableScope, key: str, value: str, chat_id: Optional[str] = None) -> None:
        with self._lock:
            self._values[self._key(scope, key, chat_id)] = value

    def clear(self) -> None:
        with self._lock:
            self._values.clear()


class InMemoryRegexRuleStore(RegexRuleStore):
    def __init__(self, rules: Iterable[RegexRule] = ()):
        self._rules: Dict[str, RegexRule] = {r.id: r for r in rules}

    def save(self, rule: RegexRule) -> RegexRule:
        self._rules[rule.id] = rule
        return rule

    def delete(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None

    def get(self, rule_id: str) -> Optional[RegexRule]:
        return self._rules.get(rule_id)

    def list(self, placement: Optional[RegexPlacement] = None, character_id: Optional[str] = None) -> List[RegexRule]:
        rules = [
            r for r in self._rules.values()
            if r.enabled
            and _visible(r.scope, r.character_id, character_id)
            and (placement is None or RegexPlacement(placement) in r.placement)
        ]
        return sorted(rules, key=lambda r: r.order)


class InMemoryTriggerStore(TriggerStore):
    def __init__(self, triggers: Iterable[Trigger] = ()):
        self._triggers: Dict[str, Trigger] = {t.id: t for t in triggers}

    def save(self, trigger: Trigger) -> Trigger:
        self._triggers[trigger.id] = trigger
        return trigger

    def delete(self, trigger_id: str) -> bool:
        return self._triggers.pop(trigger_id, None) is not None

    def get(self, trigger_id: str) -> Optional[Trigger]:
        return self._triggers.get(trigger_id)

    def list(self, character_id: Optional[str] = None) -> List[Trigger]:
        triggers = [t for t in self._triggers.values() if _visible(t.scope, t.character_id, character_id)]
        return sorted(triggers, key=lambda t: t.order)
