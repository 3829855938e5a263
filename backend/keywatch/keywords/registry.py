"""The active keyword set and its editing operations."""
from typing import Dict, Iterable, Iterator, List, Optional
from keywatch.keywords.models import Keyword
from keywatch.keywords.parser import format_keyword_spec, parse_keyword_spec, parse_keyword_list
from keywatch.core.config import settings
from keywatch.core.errors import KeywordValidationError
from keywatch.core.logging import logger


class KeywordRegistry:
    """
    Ordered set of keywords, unique by name.

    Identity is the exact name; duplicate checks and transcript matching
    are case-insensitive. Every rejected edit leaves the set untouched.
    """

    def __init__(self, initial: Optional[Iterable[str]] = None):
        self._initial = list(initial if initial is not None else settings.initial_keywords)
        self._keywords: Dict[str, Keyword] = {}
        self.reset()

    def __iter__(self) -> Iterator[Keyword]:
        return iter(list(self._keywords.values()))

    def __len__(self) -> int:
        return len(self._keywords)

    def __contains__(self, name: str) -> bool:
        return name in self._keywords

    def get(self, name: str) -> Optional[Keyword]:
        return self._keywords.get(name)

    def names(self) -> List[str]:
        return list(self._keywords)

    def _find_casefold(self, name: str) -> Optional[Keyword]:
        lowered = name.lower()
        for keyword in self._keywords.values():
            if keyword.name.lower() == lowered:
                return keyword
        return None

    def _require(self, name: str) -> Keyword:
        keyword = self._keywords.get(name)
        if keyword is None:
            raise KeywordValidationError(f'Keyword "{name}" does not exist.')
        return keyword

    def replace_all(self, raw_specs: Iterable[str]) -> List[Keyword]:
        """
        Replace the whole set from raw spec strings.

        Counts start at zero. Entries with no name are skipped and
        case-insensitive duplicates keep the first occurrence.
        """
        keywords: Dict[str, Keyword] = {}
        seen = set()
        for raw in raw_specs:
            spec = parse_keyword_spec(raw)
            if spec is None or spec.keyword.lower() in seen:
                continue
            seen.add(spec.keyword.lower())
            keywords[spec.keyword] = spec.to_keyword()

        self._keywords = keywords
        logger.info(f"Keyword set replaced: {len(keywords)} keywords")
        return list(keywords.values())

    def replace_from_text(self, text: str) -> List[Keyword]:
        """Replace the set from comma/newline separated input."""
        specs = parse_keyword_list(text)
        if not specs:
            raise KeywordValidationError("Please enter at least one keyword.")
        return self.replace_all(f"{spec.keyword}:{spec.target}" for spec in specs)

    def add(self, raw: str, aliases: Iterable[str] = ()) -> Keyword:
        spec = parse_keyword_spec(raw)
        if spec is None:
            raise KeywordValidationError("Keyword cannot be empty.")
        if self._find_casefold(spec.keyword) is not None:
            raise KeywordValidationError(f'Keyword "{spec.keyword}" already exists.')

        keyword = spec.to_keyword()
        keyword.aliases = {a.strip() for a in aliases if a and a.strip()}
        self._keywords[keyword.name] = keyword
        return keyword

    def edit(self, original_name: str, raw: str) -> Keyword:
        """
        Rename and/or retarget a keyword in place.

        Aliases carry over; the count restarts at zero.
        """
        if not (raw or "").strip():
            raise KeywordValidationError("Keyword cannot be empty.")
        original = self._require(original_name)

        spec = parse_keyword_spec(raw)
        if spec is None:
            raise KeywordValidationError("Keyword name cannot be empty.")

        clash = self._find_casefold(spec.keyword)
        if clash is not None and clash.name.lower() != original_name.lower():
            raise KeywordValidationError(f'Keyword "{spec.keyword}" already exists.')

        updated = Keyword(name=spec.keyword, target=spec.target, aliases=set(original.aliases))
        # Rebuild to keep the keyword in its original position
        self._keywords = {
            (updated.name if name == original_name else name): (updated if name == original_name else kw)
            for name, kw in self._keywords.items()
        }
        return updated

    def delete(self, name: str) -> None:
        self._require(name)
        del self._keywords[name]

    def reset_count(self, name: str) -> Keyword:
        keyword = self._require(name)
        keyword.count = 0
        keyword.is_mentioned = False
        return keyword

    def set_aliases(self, name: str, aliases: Iterable[str]) -> Keyword:
        keyword = self._require(name)
        keyword.aliases = {a.strip() for a in aliases if a and a.strip()}
        return keyword

    def clear_mentioned(self, names: Iterable[str]) -> None:
        """End the alert pulse for the given keywords, ignoring ones since removed."""
        for name in names:
            keyword = self._keywords.get(name)
            if keyword is not None:
                keyword.is_mentioned = False

    def reset(self) -> None:
        """Restore the configured initial keywords with zero counts."""
        self.replace_all(self._initial)

    def to_list(self) -> List[dict]:
        """Keywords in order, each with its editable spec string."""
        return [
            {**keyword.to_dict(), "spec": format_keyword_spec(keyword)}
            for keyword in self._keywords.values()
        ]
