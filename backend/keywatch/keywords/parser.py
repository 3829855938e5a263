"""Parser for the keyword specification mini-language.

Accepted forms, one per line or comma separated:

    KEYWORD            target 1
    KEYWORD:N          target N
    KEYWORD+N          target N
    KEYWORD+++         target = number of '+'
    N+ KEYWORD         target N (also "N+ times KEYWORD")
    KEYWORD N+         target N (also "KEYWORD N+ times")

Missing, invalid or non-positive targets fall back to 1.
"""
import re
from dataclasses import dataclass
from typing import List, Optional
from keywatch.keywords.models import Keyword

_SUFFIX_COUNT = re.compile(r"^(.*?)\s*(?::|\+)(\d+)$")
_TRAILING_PLUS_COUNT = re.compile(r"^(.*?)\s*(\d+)\+\s*(?:times)?$", re.IGNORECASE)
_LEADING_PLUS_COUNT = re.compile(r"^(\d+)\+\s*(?:times)?\s*(.*?)$", re.IGNORECASE)
_PLUS_RUN = re.compile(r"^(.*?)\s*(\++)$")

_SEPARATORS = re.compile(r"[\n,]+")


@dataclass(frozen=True)
class KeywordSpec:
    keyword: str
    target: int = 1

    def to_keyword(self) -> Keyword:
        return Keyword(name=self.keyword, target=self.target)


def parse_keyword_spec(raw: str) -> Optional[KeywordSpec]:
    """
    Parse one keyword entry.

    Returns:
        KeywordSpec, or None when the entry has no keyword name
    """
    text = (raw or "").strip()
    keyword, target = text, None

    match = _SUFFIX_COUNT.match(text)
    if match:
        keyword, target = match.group(1), match.group(2)
    elif _TRAILING_PLUS_COUNT.match(text):
        match = _TRAILING_PLUS_COUNT.match(text)
        keyword, target = match.group(1), match.group(2)
    elif _LEADING_PLUS_COUNT.match(text):
        match = _LEADING_PLUS_COUNT.match(text)
        keyword, target = match.group(2), match.group(1)
    elif _PLUS_RUN.match(text):
        match = _PLUS_RUN.match(text)
        keyword, target = match.group(1), len(match.group(2))

    keyword = keyword.strip()
    if not keyword:
        return None

    target = int(target) if target is not None else 1
    if target < 1:
        target = 1

    return KeywordSpec(keyword=keyword, target=target)


def split_keyword_input(text: str) -> List[str]:
    """Split free-form input on newlines and commas, dropping blanks."""
    return [part.strip() for part in _SEPARATORS.split(text or "") if part.strip()]


def parse_keyword_list(text: str) -> List[KeywordSpec]:
    specs = []
    for entry in split_keyword_input(text):
        spec = parse_keyword_spec(entry)
        if spec is not None:
            specs.append(spec)
    return specs


def format_keyword_spec(keyword: Keyword) -> str:
    """Render a keyword back into editable form."""
    if keyword.target > 1:
        return f"{keyword.name}:{keyword.target}"
    return keyword.name
