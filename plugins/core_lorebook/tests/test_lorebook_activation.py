# plugins/core_lorebook/tests/test_lorebook_activation.py

import pytest

from backend.core.contracts import ChatMessage
from plugins.core_lorebook.activation import (
    activate_lorebooks, check_timed_effects, match_keys, record_activations, Gate,
)
from plugins.core_lorebook.models import (
    ActivationContext, ActivationRecord, CharacterFields, LoadedLorebook, Lorebook,
    LorebookEntry, LorebookPosition, format_lorebook_section,
)


def _book(book_id: str = "lb1", **kwargs) -> Lorebook:
    return Lorebook(id=book_id, name=kwargs.pop("name", f"Book {book_id}"), **kwargs)


def _entry(entry_id: str, keys=None, content: str = "", book_id: str = "lb1", **kwargs) -> LorebookEntry:
    return LorebookEntry(id=entry_id, lorebook_id=book_id, keys=keys or [], content=content, **kwargs)


def _context(*texts: str, **kwargs) -> ActivationContext:
    return ActivationContext(messages=[ChatMessage(role="user", content=t) for t in texts], **kwargs)


def _run(entries, *texts, book=None, **ctx_kwargs):
    book = book or _book()
    return activate_lorebooks([LoadedLorebook(lorebook=book, entries=entries)], _context(*texts, **ctx_kwargs))


class TestBasicActivation:
    def test_dragon_scenario(self):
        entry = _entry("e1", keys=["dragon"], content="Dragons are powerful.", position="after_system")
        result = _run([entry], "Tell me about the dragon")

        assert result.activated_count == 1
        assert result.sections["after_system"] == ["Dragons are powerful."]
        assert result.total_tokens == 6
        assert result.debug_log[0].reason == 'Matched key: "dragon"'
        assert result.budget_exceeded is False

    def test_no_match_activates_nothing(self):
        result = _run([_entry("e1", keys=["dragon"], content="x")], "A quiet village.")
        assert result.activated_count == 0
        assert all(not contents for contents in result.sections.values())

    def test_disabled_entries_are_ignored(self):
        result = _run([_entry("e1", keys=["dragon"], content="x", enabled=False)], "dragon")
        assert result.activated_count == 0

    def test_constant_entry_activates_without_scan_text(self):
        entry = _entry("c1", content="The world is round.", constant=True)
        result = _run([entry])
        assert result.activated_count == 1
        assert result.debug_log[0].matched_key == "(constant)"
        assert result.debug_log[0].reason == "Constant entry"

    def test_insertion_order_across_lorebooks(self):
        first = LoadedLorebook(lorebook=_book("a"), entries=[_entry("late", ["key"], "late", book_id="a", insertion_order=50)])
        second = LoadedLorebook(lorebook=_book("b"), entries=[_entry("early", ["key"], "early", book_id="b", insertion_order=1)])
        result = activate_lorebooks([first, second], _context("key"))
        assert result.sections["before_history"] == ["early", "late"]

    def test_character_fields_and_author_note_are_scanned(self):
        entries = [
            _entry("e1", ["elves"], "Elves live long."),
            _entry("e2", ["winter"], "Winter is coming."),
        ]
        result = _run(
            entries, "hello",
            character_fields=CharacterFields(description="A ranger who grew up among elves."),
            author_note="Keep the tone wintry: winter storms.",
        )
        assert result.activated_count == 2

    def test_section_text_joins_with_blank_line(self):
        entries = [
            _entry("e1", ["a"], "First.", position=LorebookPosition.AFTER_HISTORY),
            _entry("e2", ["a"], "Second.", position=LorebookPosition.AFTER_HISTORY),
        ]
        result = _run(entries, "a")
        assert result.section_text(LorebookPosition.AFTER_HISTORY) == "First.\n\nSecond."
        assert format_lorebook_section([]) == ""


class TestKeyMatching:
    def test_substring_is_case_folded_by_default(self):
        assert match_keys(["DRAGON"], ["the dragon"], False, False, False) == "DRAGON"

    def test_case_sensitive(self):
        assert match_keys(["Dragon"], ["the dragon"], False, True, False) is None
        book = _book(case_sensitive=True)
        result = _run([_entry("e1", ["Dragon"], "x")], "the dragon", book=book)
        assert result.activated_count == 0

    def test_whole_words(self):
        assert match_keys(["cat"], ["concatenate"], False, False, True) is None
        assert match_keys(["cat"], ["the cat sat"], False, False, True) == "cat"
        assert match_keys(["a.b"], ["see a.b here"], False, False, True) == "a.b"

    def test_regex_keys_and_invalid_patterns(self):
        assert match_keys(["([", r"dr[a-z]+n"], ["DRAGON"], True, False, False) == r"dr[a-z]+n"
        assert match_keys(["(["], ["(["], True, False, False) is None

    def test_first_matching_key_wins(self):
        assert match_keys(["wyrm", "dragon", "drake"], ["a drake and a dragon"], False, False, False) == "dragon"

    def test_empty_keys_are_skipped(self):
        assert match_keys(["", "x"], ["anything"], False, False, False) is None

    def test_selective_requires_secondary_key(self):
        entry = _entry("e1", ["sword"], "Excalibur lore.", selective=True, secondary_keys=["lake", "stone"])
        assert _run([entry], "a sword").activated_count == 0
        assert _run([entry], "a sword in the stone").activated_count == 1

    def test_selective_without_secondary_keys_only_needs_primary(self):
        entry = _entry("e1", ["sword"], "x", selective=True)
        assert _run([entry], "a sword").activated_count == 1


class TestGroupsAndBudget:
    def test_group_exclusivity_keeps_lower_insertion_order(self):
        entries = [
            _entry("b", ["castle"], "Second castle fact.", group_id="g", insertion_order=20),
            _entry("a", ["castle"], "First castle fact.", group_id="g", insertion_order=10),
        ]
        result = _run(entries, "the castle")
        assert result.activated_count == 1
        assert result.activated_entry_ids == ["a"]

    def test_group_reservation_not_consumed_by_budget_rejection(self):
        long_text = " ".join(["word"] * 30)
        entries = [
            _entry("big", ["castle"], long_text, group_id="g", insertion_order=1),
            _entry("small", ["castle"], "Small fact.", group_id="g", insertion_order=2),
        ]
        result = _run(entries, "castle", book=_book(budget_tokens=20))

        assert result.budget_exceeded is True
        assert result.activated_entry_ids == ["small"]
        rejection = result.debug_log[0]
        assert rejection.entry_id == "big"
        assert rejection.included is False
        assert rejection.reason == "Budget exceeded (41 > 20)"

    def test_constant_entry_ignores_group_exclusivity(self):
        # keyword entry claims the group first; the constant one still activates
        entries = [
            _entry("k", ["dragon"], "Dragons hoard gold.", group_id="g", insertion_order=1),
            _entry("c", content="The realm is old.", group_id="g", constant=True, insertion_order=2),
        ]
        result = _run(entries, "dragon")
        assert result.activated_entry_ids == ["k", "c"]

    def test_constant_entry_does_not_claim_its_group(self):
        entries = [
            _entry("c", content="The realm is old.", group_id="g", constant=True, insertion_order=1),
            _entry("k", ["dragon"], "Dragons hoard gold.", group_id="g", insertion_order=2),
            _entry("k2", ["dragon"], "Dragons sleep.", group_id="g", insertion_order=3),
        ]
        result = _run(entries, "dragon")
        assert result.activated_entry_ids == ["c", "k"]

    def test_budget_is_never_exceeded(self):
        entries = [_entry(f"e{i}", ["k"], "one two three", insertion_order=i) for i in range(5)]
        result = _run(entries, "k", book=_book(budget_tokens=12))

        assert result.activated_count == 2
        assert result.total_tokens == 12
        assert result.budget_exceeded is True

    def test_budget_is_tracked_per_lorebook(self):
        books = [
            LoadedLorebook(lorebook=_book("a", budget_tokens=6), entries=[_entry("ea", ["k"], "one two three", book_id="a")]),
            LoadedLorebook(lorebook=_book("b", budget_tokens=6), entries=[_entry("eb", ["k"], "one two three", book_id="b")]),
        ]
        result = activate_lorebooks(books, _context("k"))
        assert result.activated_count == 2
        assert result.total_tokens == 12
        assert result.budget_exceeded is False

    def test_constant_entry_can_be_budget_rejected(self):
        entry = _entry("c", content="one two three", constant=True)
        result = _run([entry], book=_book(budget_tokens=3))
        assert result.activated_count == 0
        assert result.budget_exceeded is True


class TestRecursion:
    @pytest.fixture
    def chain(self):
        return [
            _entry("a", ["dragon"], "The dragon guards the crystal."),
            _entry("b", ["crystal"], "The crystal hums with power."),
            _entry("c", ["power"], "Power corrupts."),
        ]

    def test_recursive_chain(self, chain):
        result = _run(chain, "dragon")
        assert result.activated_entry_ids == ["a", "b", "c"]

    def test_recursion_depth_is_bounded(self, chain):
        result = _run(chain, "dragon", book=_book(max_recursion_steps=1))
        assert result.activated_entry_ids == ["a", "b"]

    def test_zero_steps_falls_back_to_default(self, chain):
        result = _run(chain, "dragon", book=_book(max_recursion_steps=0))
        assert result.activated_entry_ids == ["a", "b", "c"]

    def test_exclude_recursion(self, chain):
        chain[0] = _entry("a", ["dragon"], "The dragon guards the crystal.", exclude_recursion=True)
        result = _run(chain, "dragon")
        assert result.activated_entry_ids == ["a"]

    def test_recursive_scan_disabled(self, chain):
        result = _run(chain, "dragon", book=_book(recursive_scan=False))
        assert result.activated_entry_ids == ["a"]

    def test_cycles_terminate_and_activate_once(self):
        entries = [
            _entry("x", ["ping"], "ping pong"),
            _entry("y", ["pong"], "pong ping"),
        ]
        result = _run(entries, "ping", book=_book(max_recursion_steps=50))
        assert sorted(result.activated_entry_ids) == ["x", "y"]
        assert result.activated_count == 2


class TestTimedEffects:
    def _ctx(self, turn, history):
        return ActivationContext(current_turn=turn, activation_history=history)

    def test_gates_ignored_without_turn_or_history(self):
        entry = _entry("e", ["k"], delay_turns=3)
        assert check_timed_effects(entry, ActivationContext(current_turn=5)) is Gate.PASS
        assert check_timed_effects(entry, ActivationContext(activation_history={})) is Gate.PASS

    def test_delay_blocks_first_activation(self):
        entry = _entry("e", ["k"], delay_turns=2)
        assert check_timed_effects(entry, self._ctx(10, {})) is Gate.BLOCKED

    def test_delay_with_history(self):
        entry = _entry("e", ["k"], delay_turns=2)
        history = {"e": ActivationRecord(last_activated_turn=9)}
        assert check_timed_effects(entry, self._ctx(10, history)) is Gate.BLOCKED
        assert check_timed_effects(entry, self._ctx(11, history)) is Gate.PASS

    def test_cooldown(self):
        entry = _entry("e", ["k"], cooldown_turns=3)
        history = {"e": ActivationRecord(last_activated_turn=4)}
        assert check_timed_effects(entry, self._ctx(6, history)) is Gate.BLOCKED
        assert check_timed_effects(entry, self._ctx(7, history)) is Gate.PASS
        assert check_timed_effects(entry, self._ctx(7, {})) is Gate.PASS

    def test_sticky_forces_activation_without_keyword(self):
        entry = _entry("e", ["never-mentioned"], "Still relevant.", sticky_turns=2)
        history = {"e": ActivationRecord(last_activated_turn=3)}

        result = _run([entry], "unrelated", current_turn=5, activation_history=history)
        assert result.activated_entry_ids == ["e"]
        assert result.debug_log[0].reason == "Sticky entry"

        expired = _run([entry], "unrelated", current_turn=6, activation_history=history)
        assert expired.activated_count == 0

    def test_gated_constant_entry_does_not_activate(self):
        entry = _entry("c", content="x", constant=True, delay_turns=1)
        result = _run([entry], current_turn=1, activation_history={})
        assert result.activated_count == 0

    def test_record_activations(self):
        sticky = _entry("s", ["nope"], "sticky", sticky_turns=5)
        fresh = _entry("f", ["k"], "fresh")
        history = {"s": ActivationRecord(last_activated_turn=2)}
        result = _run([sticky, fresh], "k", current_turn=4, activation_history=history)

        updated = record_activations(history, result, current_turn=4)
        assert updated["f"].last_activated_turn == 4
        # sticky carry-over keeps its original turn
        assert updated["s"].last_activated_turn == 2
        assert history == {"s": ActivationRecord(last_activated_turn=2)}
