# backend/core/patterns.py
"""
Fail-soft regular expressions.

Lorebook keys, trigger effects and user regex rules are authored in the
JavaScript dialect (flag strings such as "gi", `$1` / `$&` substitutions).
`compile_pattern` translates them to `re` and never raises: a pattern that
does not compile becomes a `SafePattern` that matches nothing and leaves
text unchanged on replace.
"""
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

logger = logging.getLogger(__name__)

_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
# accepted but without a Python counterpart
_NOOP_FLAGS = {"u", "y", "d"}
_JS_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")
_SUBSTITUTION_TOKEN = re.compile(r"\$(\$|&|`|'|<[^>]*>|\d{1,2})")


def _expand_substitution(match: "re.Match[str]", template: str) -> str:
    group_count = match.re.groups

    def token(t: "re.Match[str]") -> str:
        tok = t.group(1)
        if tok == "$":
            return "$"
        if tok == "&":
            return match.group(0)
        if tok == "`":
            return match.string[:match.start()]
        if tok == "'":
            return match.string[match.end():]
        if tok.startswith("<"):
            try:
                return match.group(tok[1:-1]) or ""
            except IndexError:
                return t.group(0)
        index = int(tok)
        if 0 < index <= group_count:
            return match.group(index) or ""
        # "$12" with a single group reads as group 1 followed by "2"
        if len(tok) == 2 and 0 < int(tok[0]) <= group_count:
            return (match.group(int(tok[0])) or "") + tok[1]
        return t.group(0)

    return _SUBSTITUTION_TOKEN.sub(token, template)


@dataclass(frozen=True)
class SafePattern:
    source: str
    compiled: Optional["re.Pattern[str]"] = None
    replace_all: bool = False
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.compiled is not None

    def test(self, text: str) -> bool:
        if self.compiled is None:
            return False
        return self.compiled.search(text) is not None

    def replace(self, text: str, substitution: str) -> str:
        """Replace the first match (every match with the `g` flag)."""
        if self.compiled is None:
            return text
        return self.compiled.sub(
            lambda m: _expand_substitution(m, substitution),
            text,
            count=0 if self.replace_all else 1,
        )


@lru_cache(maxsize=1024)
def compile_pattern(source: str, flags: str = "") -> SafePattern:
    re_flags = 0
    for flag in flags:
        if flag == "g" or flag in _NOOP_FLAGS:
            continue
        if flag not in _FLAG_MAP:
            return SafePattern(source=source, error=f"Invalid regular expression flag '{flag}'")
        re_flags |= _FLAG_MAP[flag]

    try:
        compiled = re.compile(_JS_NAMED_GROUP.sub("(?P<", source), re_flags)
    except re.error as e:
        logger.debug(f"Pattern {source!r} with flags {flags!r} did not compile: {e}")
        return SafePattern(source=source, error=str(e))

    return SafePattern(source=source, compiled=compiled, replace_all="g" in flags)


def literal_pattern(text: str, *, case_sensitive: bool = False, whole_word: bool = False) -> SafePattern:
    """A pattern matching `text` literally, optionally bounded by word boundaries."""
    escaped = re.escape(text)
    if whole_word:
        escaped = rf"\b{escaped}\b"
    return compile_pattern(escaped, "" if case_sensitive else "i")
