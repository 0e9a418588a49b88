"""
Intent Router Module

Regex-based reference InputTransformer. Intents are matched against a
normalized form of the raw input; named capture groups become the
extracted parameters handed to a state's transition.

Usage:
    >>> AGE = Intent.from_patterns(
    ...     "age", r"i am a (?P<age>\\d+) year old (?P<gender>male|female)"
    ... )
    >>> intent, params = text_input_transformer("I am a 29 year old male.", [AGE])
    >>> intent is AGE, params
    (True, {'age': '29', 'gender': 'male'})
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Optional, Pattern, Sequence, Tuple

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, eq=False)
class Intent:
    """
    A classified meaning of user input.

    Compared by identity: states return the same Intent objects from
    ``valid_intents`` that their transitions test against.

    Attributes:
        slug: Intent identifier
        patterns: Compiled regexes tried in order against cleaned input
    """
    slug: str
    patterns: Tuple[Pattern[str], ...] = ()

    @classmethod
    def from_patterns(cls, slug: str, *patterns: str) -> "Intent":
        return cls(slug=slug, patterns=tuple(re.compile(p) for p in patterns))

    def match(self, text: str) -> Optional[Dict[str, str]]:
        """
        Match cleaned text against this intent's patterns.

        Args:
            text: Input already passed through clean_input

        Returns:
            Named groups of the first matching pattern (unmatched optional
            groups omitted), or None if no pattern matches
        """
        for pattern in self.patterns:
            found = pattern.search(text)
            if found:
                return {k: v for k, v in found.groupdict().items() if v is not None}
        return None

    def __repr__(self) -> str:
        return f"Intent({self.slug!r})"


def clean_input(text: str) -> str:
    """
    Normalize raw text for matching.

    NFKC-normalizes, lowercases, drops Unicode punctuation and collapses
    runs of whitespace.

    Examples:
        >>> clean_input("Hello, World")
        'hello world'
        >>> clean_input("Hello  World!")
        'hello world'
    """
    normalized = unicodedata.normalize("NFKC", text).lower()
    stripped = "".join(ch for ch in normalized if not unicodedata.category(ch).startswith("P"))
    return _WHITESPACE.sub(" ", stripped).strip()


def text_input_transformer(
    raw_input: Any,
    valid_intents: Sequence[Intent],
) -> Tuple[Optional[Intent], Dict[str, str]]:
    """
    Classify text input against the intents a state currently accepts.

    First matching intent wins. Non-text input never matches.

    Args:
        raw_input: Raw input received by the platform adapter
        valid_intents: Intents the active state accepts, in priority order

    Returns:
        (intent, params) on a match, (None, {}) otherwise
    """
    if not isinstance(raw_input, str):
        return None, {}

    text = clean_input(raw_input)
    for intent in valid_intents:
        params = intent.match(text)
        if params is not None:
            return intent, params
    return None, {}
