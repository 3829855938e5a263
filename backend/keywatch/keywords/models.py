"""Keyword data model."""
from dataclasses import dataclass, field
from typing import List, Set


@dataclass
class Keyword:
    """A monitored keyword with its aliases and progress toward a target."""
    name: str
    target: int = 1
    count: int = 0
    aliases: Set[str] = field(default_factory=set)
    is_mentioned: bool = False

    def __post_init__(self):
        if self.target < 1:
            self.target = 1
        if self.count < 0:
            self.count = 0

    def search_terms(self) -> List[str]:
        """Name plus aliases, deduplicated case-insensitively, empty terms dropped."""
        terms = []
        seen = set()
        for term in [self.name, *sorted(self.aliases)]:
            term = (term or "").strip()
            if term and term.lower() not in seen:
                seen.add(term.lower())
                terms.append(term)
        return terms

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "aliases": sorted(self.aliases),
            "count": self.count,
            "target": self.target,
            "is_mentioned": self.is_mentioned,
        }
