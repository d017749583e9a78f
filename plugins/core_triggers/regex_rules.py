# plugins/core_triggers/regex_rules.py
import logging
from typing import Iterable, Optional

from pydantic import BaseModel

from backend.core.patterns import compile_pattern
from .models import RegexPlacement, RegexRule

logger = logging.getLogger("promptloom.triggers")


class RegexValidation(BaseModel):
    valid: bool
    error: Optional[str] = None


def validate_regex_rule(find_regex: str, flags: str = "g") -> RegexValidation:
    if not find_regex:
        return RegexValidation(valid=False, error="Pattern is empty")
    pattern = compile_pattern(find_regex, flags)
    if not pattern.is_valid:
        return RegexValidation(valid=False, error=pattern.error)
    return RegexValidation(valid=True)


def apply_regex_rules(text: str, rules: Iterable[RegexRule], placement: RegexPlacement) -> str:
    """
    Rewrite `text` with every enabled rule registered for `placement`, in rule
    order. Rules whose pattern does not compile are skipped.
    """
    placement = RegexPlacement(placement)
    for rule in sorted(rules, key=lambda r: r.order):
        if not rule.enabled or placement not in rule.placement:
            continue
        pattern = compile_pattern(rule.find_regex, rule.flags or "g")
        if not pattern.is_valid:
            logger.warning(f"Skipping regex rule '{rule.id}': {pattern.error}")
            continue
        text = pattern.replace(text, rule.replace_string)
    return text
