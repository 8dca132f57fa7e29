"""
Text helpers for schema names and display-string templates.
"""

import re

# First character, any capital, or the first character of a word
_WORD_START_RE = re.compile(r"(?:^\w|[A-Z]|\b\w)")
_WHITESPACE_RE = re.compile(r"\s+")


def to_camel_case(text: str) -> str:
    """
    Derive a property machine name from its display name.

    "First Name" -> "firstName", "date of birth" -> "dateOfBirth". Existing
    capitals are kept upper-case, so "Home URL" becomes "homeURL".
    """
    if not text:
        return ""

    def _case(match: re.Match) -> str:
        word = match.group(0)
        return word.lower() if match.start() == 0 else word.upper()

    return _WHITESPACE_RE.sub("", _WORD_START_RE.sub(_case, text.strip()))
