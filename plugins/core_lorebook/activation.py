# plugins/core_lorebook/activation.py

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set

from backend.core.patterns import compile_pattern, literal_pattern
from plugins.core_budget.tokenizers import estimate_tokens
from .models import (
    ActivationContext,
    ActivationRecord,
    LoadedLorebook,
    Lorebook,
    LorebookDebugEntry,
    LorebookEntry,
    LorebookPromptResult,
)

logger = logging.getLogger("promptloom.lorebook")

DEFAULT_RECURSION_STEPS = 3
CONSTANT_KEY = "(constant)"
STICKY_KEY = "(sticky)"


class Gate(Enum):
    BLOCKED = "blocked"
    PASS = "pass"
    # sticky: activates without a keyword match
    FORCE = "force"


@dataclass(frozen=True)
class _Candidate:
    entry: LorebookEntry
    lorebook: Lorebook


def build_scan_texts(context: ActivationContext) -> List[str]:
    """Message contents, then character fields, then the author note."""
    texts = [m.content for m in context.messages]

    fields = context.character_fields
    if fields is not None:
        for value in (fields.description, fields.personality, fields.scenario, fields.system_prompt):
            if value:
                texts.append(value)

    if context.author_note:
        texts.append(context.author_note)
    return texts


def match_keys(
    keys: Sequence[str],
    texts: Sequence[str],
    use_regex: bool,
    case_sensitive: bool,
    whole_word: bool,
) -> Optional[str]:
    """Return the first key found in the joined texts, or None. Invalid regex keys are skipped."""
    combined = "\n".join(texts)
    folded = combined if case_sensitive else combined.lower()

    for key in keys:
        if not key:
            continue
        if use_regex:
            matched = compile_pattern(key, "" if case_sensitive else "i").test(combined)
        elif whole_word:
            matched = literal_pattern(key, case_sensitive=case_sensitive, whole_word=True).test(combined)
        else:
            matched = (key if case_sensitive else key.lower()) in folded
        if matched:
            return key
    return None


def check_timed_effects(entry: LorebookEntry, context: ActivationContext) -> Gate:
    """
    Delay, cooldown and sticky gating. Only applies when the caller supplied
    both the current turn and the activation history.
    """
    if context.current_turn is None or context.activation_history is None:
        return Gate.PASS

    record = context.activation_history.get(entry.id)
    elapsed = context.current_turn - record.last_activated_turn if record is not None else None

    if entry.delay_turns is not None and entry.delay_turns > 0:
        # an entry with a delay and no history never activates for the first time
        if elapsed is None or elapsed < entry.delay_turns:
            return Gate.BLOCKED

    if entry.cooldown_turns is not None and entry.cooldown_turns > 0 and elapsed is not None:
        if elapsed < entry.cooldown_turns:
            return Gate.BLOCKED

    if entry.sticky_turns is not None and entry.sticky_turns > 0 and elapsed is not None:
        if elapsed <= entry.sticky_turns:
            return Gate.FORCE

    return Gate.PASS


def _recursion_limit(lorebooks: Iterable[Lorebook], default: int) -> int:
    steps = [lb.max_recursion_steps for lb in lorebooks if lb.max_recursion_steps > 0]
    return max(steps) if steps else default


class LorebookActivationEngine:
    """
    Selects the lorebook entries whose content goes into this turn's prompt.

    Enabled entries from every lorebook are considered in insertion order.
    Each round scans a corpus of text; the first round scans the turn's
    messages, character fields and author note, and each later round scans
    only the content of entries included in the previous round. An entry is
    decided at most once per pass, whatever the outcome.
    """

    def __init__(self, default_recursion_steps: int = DEFAULT_RECURSION_STEPS):
        self.default_recursion_steps = default_recursion_steps

    def activate(self, lorebooks: Sequence[LoadedLorebook], context: ActivationContext) -> LorebookPromptResult:
        result = LorebookPromptResult()

        candidates = [
            _Candidate(entry=entry, lorebook=loaded.lorebook)
            for loaded in lorebooks
            for entry in loaded.entries
            if entry.enabled
        ]
        # stable, so ties keep their lorebook/entry order
        candidates.sort(key=lambda c: c.entry.insertion_order)

        max_rounds = _recursion_limit((l.lorebook for l in lorebooks), self.default_recursion_steps)
        decided: Set[str] = set()
        reserved_groups: Set[str] = set()
        spent: Dict[str, int] = {}

        texts = build_scan_texts(context)
        depth = 0
        while True:
            included = self._run_round(candidates, texts, context, result, decided, reserved_groups, spent)
            logger.debug(f"Lorebook round {depth}: {len(included)} entries included.")

            texts = [
                c.entry.content for c in included
                if not c.entry.exclude_recursion and c.lorebook.recursive_scan
            ]
            if not texts or depth >= max_rounds:
                break
            depth += 1

        logger.info(
            f"Lorebook pass finished: {result.activated_count} entries, "
            f"{result.total_tokens} tokens, budget_exceeded={result.budget_exceeded}."
        )
        return result

    def _run_round(
        self,
        candidates: List[_Candidate],
        texts: List[str],
        context: ActivationContext,
        result: LorebookPromptResult,
        decided: Set[str],
        reserved_groups: Set[str],
        spent: Dict[str, int],
    ) -> List[_Candidate]:
        included: List[_Candidate] = []

        for candidate in candidates:
            entry, lorebook = candidate.entry, candidate.lorebook
            if entry.id in decided:
                continue

            gate = check_timed_effects(entry, context)
            if gate is Gate.BLOCKED:
                continue

            matched_key = self._match(entry, lorebook, texts, gate)
            if matched_key is None:
                continue

            # constant entries neither respect nor claim a group
            grouped = entry.group_id and not entry.constant
            if grouped and entry.group_id in reserved_groups:
                continue

            decided.add(entry.id)
            if self._include(candidate, matched_key, result, spent):
                if grouped:
                    reserved_groups.add(entry.group_id)
                included.append(candidate)

        return included

    @staticmethod
    def _match(entry: LorebookEntry, lorebook: Lorebook, texts: List[str], gate: Gate) -> Optional[str]:
        if entry.constant:
            return CONSTANT_KEY
        if gate is Gate.FORCE:
            return STICKY_KEY

        case_sensitive = entry.case_sensitive or lorebook.case_sensitive
        whole_word = entry.match_whole_words or lorebook.match_whole_words

        matched_key = match_keys(entry.keys, texts, entry.regex, case_sensitive, whole_word)
        if matched_key is None:
            return None

        if entry.selective and entry.secondary_keys:
            if match_keys(entry.secondary_keys, texts, entry.regex, case_sensitive, whole_word) is None:
                return None
        return matched_key

    @staticmethod
    def _include(
        candidate: _Candidate,
        matched_key: str,
        result: LorebookPromptResult,
        spent: Dict[str, int],
    ) -> bool:
        entry, lorebook = candidate.entry, candidate.lorebook
        tokens = estimate_tokens(entry.content)
        would_spend = spent.get(lorebook.id, 0) + tokens

        if would_spend > lorebook.budget_tokens:
            result.budget_exceeded = True
            result.debug_log.append(LorebookDebugEntry(
                entry_id=entry.id,
                lorebook_name=lorebook.name,
                keys=list(entry.keys),
                matched_key=matched_key,
                position=entry.position,
                reason=f"Budget exceeded ({would_spend} > {lorebook.budget_tokens})",
                included=False,
            ))
            return False

        spent[lorebook.id] = would_spend
        result.sections[entry.position.value].append(entry.content)
        result.total_tokens += tokens
        result.activated_count += 1
        result.activated_entry_ids.append(entry.id)

        if matched_key == CONSTANT_KEY:
            reason = "Constant entry"
        elif matched_key == STICKY_KEY:
            reason = "Sticky entry"
        else:
            reason = f'Matched key: "{matched_key}"'
        result.debug_log.append(LorebookDebugEntry(
            entry_id=entry.id,
            lorebook_name=lorebook.name,
            keys=list(entry.keys),
            matched_key=matched_key,
            position=entry.position,
            reason=reason,
        ))
        return True


def activate_lorebooks(
    lorebooks: Sequence[LoadedLorebook],
    context: ActivationContext,
    default_recursion_steps: int = DEFAULT_RECURSION_STEPS,
) -> LorebookPromptResult:
    return LorebookActivationEngine(default_recursion_steps).activate(lorebooks, context)


def record_activations(
    history: Optional[Dict[str, ActivationRecord]],
    result: LorebookPromptResult,
    current_turn: int,
) -> Dict[str, ActivationRecord]:
    """
    The activation history the caller should persist after this turn.
    Sticky carry-overs keep their original turn so the sticky window can expire.
    """
    updated = dict(history or {})
    sticky = {d.entry_id for d in result.debug_log if d.included and d.matched_key == STICKY_KEY}
    for entry_id in result.activated_entry_ids:
        if entry_id not in sticky:
            updated[entry_id] = ActivationRecord(last_activated_turn=current_turn)
    return updated
