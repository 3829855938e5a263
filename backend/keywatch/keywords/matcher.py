"""Keyword detection over incremental transcript batches."""
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple
from keywatch.keywords.models import Keyword
from keywatch.transcript.models import DetectionEvent
from keywatch.core.config import settings
from keywatch.core.logging import logger


def word_offsets(words: List[str], chunk: str) -> List[Tuple[int, int]]:
    """
    Character span of each word inside the joined chunk.

    Each search starts where the previous word ended so repeated words get
    their own spans. Unlocatable words get (-1, -1).
    """
    offsets = []
    cursor = 0
    for word in words:
        start = chunk.find(word, cursor)
        if start == -1:
            offsets.append((-1, -1))
            continue
        end = start + len(word)
        offsets.append((start, end))
        cursor = end
    return offsets


def build_pattern(keyword: Keyword) -> Optional[re.Pattern]:
    """
    Case-insensitive whole-word pattern for a keyword and its aliases.

    Longer terms are tried first so an alias like "new york city" wins over
    "new york" at the same position.
    """
    terms = keyword.search_terms()
    if not terms:
        return None
    terms.sort(key=len, reverse=True)
    alternation = "|".join(rf"\b{re.escape(term)}\b" for term in terms)
    return re.compile(f"(?:{alternation})", re.IGNORECASE)


@dataclass
class MatchResult:
    """Outcome of scanning one batch."""
    detections: List[DetectionEvent] = field(default_factory=list)
    alerted_indices: Set[int] = field(default_factory=set)
    counts: Dict[str, int] = field(default_factory=dict)
    reached_target: List[str] = field(default_factory=list)


class KeywordMatcher:
    """
    Scans word batches for keyword mentions and keeps the detection logs.

    - `log`: most recent detections, bounded
    - `dataset`: every detection of the session, for correlation
    """

    def __init__(self, log_size: Optional[int] = None):
        self.log: Deque[DetectionEvent] = deque(maxlen=log_size or settings.detection_log_size)
        self.dataset: List[DetectionEvent] = []
        self.mention_count = 0
        self._next_id = 0

    def scan(
        self,
        words: List[str],
        keywords: Iterable[Keyword],
        context: str,
        speaker: str,
        timestamp: datetime,
        session_time: float
    ) -> MatchResult:
        """
        Find keyword mentions in a batch and update keyword progress.

        Args:
            words: New words of the batch, in spoken order
            keywords: Active keywords, in iteration order
            context: Full transcript text the batch came from
            speaker: Speaker for this batch
            timestamp: Wall-clock time of the batch
            session_time: Seconds since the session started

        Returns:
            MatchResult with detections ordered by match start offset
        """
        result = MatchResult()
        chunk = " ".join(words)
        if not chunk:
            return result

        offsets = word_offsets(words, chunk)
        # (start, keyword order, keyword name, matched text)
        found: List[Tuple[int, int, str, str]] = []

        for order, keyword in enumerate(keywords):
            pattern = build_pattern(keyword)
            if pattern is None:
                continue

            running = keyword.count
            for match in pattern.finditer(chunk):
                running += 1
                found.append((match.start(), order, keyword.name, match.group(0)))

                # Exactly at target: overshoot in a later batch does not re-trigger
                if running == keyword.target:
                    if keyword.name not in result.reached_target:
                        result.reached_target.append(keyword.name)
                    for index, (start, end) in enumerate(offsets):
                        if start != -1 and match.start() < end and match.end() > start:
                            result.alerted_indices.add(index)

            if running != keyword.count:
                result.counts[keyword.name] = running
                keyword.count = running
            if keyword.name in result.reached_target:
                keyword.is_mentioned = True

        found.sort(key=lambda item: (item[0], item[1]))
        for _, _, name, text in found:
            result.detections.append(DetectionEvent(
                id=f"detection-{self._next_id}",
                keyword=name,
                matched_text=text,
                speaker=speaker,
                timestamp=timestamp,
                session_time_seconds=max(0.0, session_time),
                context=context
            ))
            self._next_id += 1

        if result.detections:
            self.log.extend(result.detections)
            self.dataset.extend(result.detections)
            self.mention_count += len(result.detections)
            logger.info(
                f"{len(result.detections)} detections: "
                + ", ".join(sorted({d.keyword for d in result.detections}))
            )

        return result

    def reset(self) -> None:
        self.log.clear()
        self.dataset.clear()
        self.mention_count = 0
        self._next_id = 0
