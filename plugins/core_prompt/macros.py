# plugins/core_prompt/macros.py
"""
`{{name}}` placeholders that may appear in any prompt text.

    {{user}}   the user's display name
    {{char}}   the character's name
    {{time}}   current time, HH:MM (24h)
    {{date}}   current date, YYYY-MM-DD
    {{model}}  the active model id

Names are matched case-insensitively. Anything else between double braces is
left untouched.
"""
import re
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

MACRO_PATTERN = re.compile(r"\{\{(\w+)\}\}")


class MacroContext(BaseModel):
    user_name: Optional[str] = None
    char_name: Optional[str] = None
    model_name: Optional[str] = None


def expand_macros(text: str, context: MacroContext, now: Optional[Callable[[], datetime]] = None) -> str:
    if not text:
        return text
    clock = now or datetime.now

    def _substitute(match: "re.Match") -> str:
        key = match.group(1).lower()
        if key == "user":
            return context.user_name or "User"
        if key == "char":
            return context.char_name or "Assistant"
        if key == "time":
            return clock().strftime("%H:%M")
        if key == "date":
            return clock().strftime("%Y-%m-%d")
        if key == "model":
            return context.model_name or "unknown"
        return match.group(0)

    return MACRO_PATTERN.sub(_substitute, text)


def expand_macros_in_object(data: Dict[str, Any], context: MacroContext, now: Optional[Callable[[], datetime]] = None) -> Dict[str, Any]:
    """Shallow: only top-level string values are expanded. The input is not modified."""
    return {
        key: expand_macros(value, context, now) if isinstance(value, str) else value
        for key, value in data.items()
    }
