"""Rewrite regional or phonetic spelling variants to a canonical form."""
import re
from dataclasses import dataclass, replace
from typing import MutableSequence, Optional
from keywatch.transcript.models import TranscriptWord
from keywatch.core.logging import logger

CANONICAL_WORD_MAP = {
    "aluminium": "aluminum",
    "colour": "color",
    "flavour": "flavor",
    "licence": "license",
    "theatre": "theater",
    "grey": "gray",
    "centre": "center",
    "analyse": "analyze",
    "organise": "organize",
    "behaviour": "behavior",
}

_EDGE_PUNCTUATION = re.compile(r"^[\W_]+|[\W_]+$")


def normalize_word(word: str) -> str:
    """Lowercase and strip leading/trailing non-alphanumerics; inner hyphens and apostrophes survive."""
    if not word:
        return ""
    return _EDGE_PUNCTUATION.sub("", word.lower())


@dataclass
class CanonicalizationResult:
    variant: str
    canonical: Optional[str]
    display_entry: Optional[TranscriptWord] = None
    history_entry: Optional[TranscriptWord] = None

    @property
    def applied(self) -> bool:
        return self.display_entry is not None or self.history_entry is not None


def _replace_most_recent(entries: MutableSequence[TranscriptWord], variant: str, canonical: str) -> Optional[TranscriptWord]:
    for index in range(len(entries) - 1, -1, -1):
        if normalize_word(entries[index].word) == variant:
            entries[index] = replace(entries[index], word=canonical)
            return entries[index]
    return None


def canonicalize(
    variant: str,
    display_window: MutableSequence[TranscriptWord],
    history: MutableSequence[TranscriptWord]
) -> CanonicalizationResult:
    """
    Replace the most recent occurrence of `variant` in each log.

    The two logs are searched independently; once a word has been evicted
    from the display window only the history copy can still be found.
    Unmapped variants and words not yet committed are a no-op.
    """
    normalized = normalize_word(variant)
    canonical = CANONICAL_WORD_MAP.get(normalized)
    result = CanonicalizationResult(variant=normalized, canonical=canonical)
    if canonical is None:
        logger.debug(f"No canonical form for '{variant}'")
        return result

    result.display_entry = _replace_most_recent(display_window, normalized, canonical)
    result.history_entry = _replace_most_recent(history, normalized, canonical)

    if result.applied:
        logger.info(f"Canonicalized '{normalized}' -> '{canonical}'")
    return result
