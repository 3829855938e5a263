"""Temporal correlation between keyword mentions, recomputed from full history."""
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from keywatch.keywords.models import Keyword
from keywatch.transcript.models import DetectionEvent
from keywatch.core.config import settings


@dataclass(frozen=True)
class ProximityPair:
    """Two adjacent detections of different keywords close in time."""
    earlier: DetectionEvent
    later: DetectionEvent

    @property
    def key(self) -> Tuple[str, str]:
        return pair_key(self.earlier.keyword, self.later.keyword)

    @property
    def delta(self) -> float:
        return self.later.session_time_seconds - self.earlier.session_time_seconds


@dataclass(frozen=True)
class TensionRelationship:
    keyword1: str
    keyword2: str
    occurrences: int


@dataclass
class CorrelationSnapshot:
    """Everything a chart needs, derived from the detection history."""
    series: Dict[str, List[Tuple[float, int]]] = field(default_factory=dict)
    points: Dict[str, List[Tuple[float, int, str]]] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)
    dominant_keyword: Optional[str] = None
    proximity_pairs: List[ProximityPair] = field(default_factory=list)
    tensions: List[TensionRelationship] = field(default_factory=list)
    axis_max: int = 5

    def to_dict(self) -> dict:
        return {
            "series": {k: [list(p) for p in v] for k, v in self.series.items()},
            "points": {
                k: [{"x": x, "y": y, "context": c} for x, y, c in v]
                for k, v in self.points.items()
            },
            "counts": dict(self.counts),
            "dominant_keyword": self.dominant_keyword,
            "proximity_pairs": [
                {"from": p.earlier.id, "to": p.later.id, "keywords": list(p.key), "delta": p.delta}
                for p in self.proximity_pairs
            ],
            "tensions": [
                {"keyword1": t.keyword1, "keyword2": t.keyword2, "occurrences": t.occurrences}
                for t in self.tensions
            ],
            "axis_max": self.axis_max,
        }


def pair_key(a: str, b: str) -> Tuple[str, str]:
    """Unordered keyword pair key."""
    return (a, b) if a <= b else (b, a)


def find_dominant(counts: Dict[str, int]) -> Optional[str]:
    """Keyword with the strictly highest count; ties and all-zero give None."""
    if not counts:
        return None
    best = max(counts.values())
    if best <= 0:
        return None
    leaders = [name for name, count in counts.items() if count == best]
    return leaders[0] if len(leaders) == 1 else None


def compute_correlation(
    events: Iterable[DetectionEvent],
    keywords: Iterable[Keyword],
    proximity_threshold: Optional[float] = None,
    tension_threshold: Optional[int] = None
) -> CorrelationSnapshot:
    """
    Recompute chart series, dominance, proximity and tension from scratch.

    Series are only built for keywords still in the active set; proximity
    and tension consider every detection.

    Args:
        events: Full detection history
        keywords: Current keyword set
        proximity_threshold: Max seconds between adjacent detections
        tension_threshold: Proximity occurrences needed for a tension line
    """
    if proximity_threshold is None:
        proximity_threshold = settings.proximity_threshold_s
    if tension_threshold is None:
        tension_threshold = settings.tension_line_threshold

    ordered = sorted(events, key=lambda e: e.session_time_seconds)
    snapshot = CorrelationSnapshot()
    if not ordered:
        return snapshot

    detected = {e.keyword for e in ordered}
    for keyword in keywords:
        if keyword.name in detected:
            snapshot.series[keyword.name] = [(0.0, 0)]
            snapshot.points[keyword.name] = []
            snapshot.counts[keyword.name] = 0

    for event in ordered:
        if event.keyword not in snapshot.series:
            continue
        previous = snapshot.counts[event.keyword]
        current = previous + 1
        snapshot.counts[event.keyword] = current
        t = event.session_time_seconds
        snapshot.series[event.keyword].append((t, previous))
        snapshot.series[event.keyword].append((t, current))
        snapshot.points[event.keyword].append((t, current, event.context))

    snapshot.dominant_keyword = find_dominant(snapshot.counts)

    occurrences: Dict[Tuple[str, str], int] = {}
    for earlier, later in zip(ordered, ordered[1:]):
        if earlier.keyword == later.keyword:
            continue
        if abs(later.session_time_seconds - earlier.session_time_seconds) > proximity_threshold:
            continue
        pair = ProximityPair(earlier=earlier, later=later)
        snapshot.proximity_pairs.append(pair)
        occurrences[pair.key] = occurrences.get(pair.key, 0) + 1

    snapshot.tensions = [
        TensionRelationship(keyword1=a, keyword2=b, occurrences=count)
        for (a, b), count in occurrences.items()
        if count >= tension_threshold
    ]

    top = max(snapshot.counts.values(), default=0)
    snapshot.axis_max = max(5, int(math.ceil(top / 5.0)) * 5)
    return snapshot


def nearest_counterpart(
    events: Sequence[DetectionEvent],
    event: DetectionEvent,
    window: Optional[float] = None
) -> Optional[Tuple[DetectionEvent, float]]:
    """
    Closest detection of a different keyword, with its signed time offset.

    Returns None when nothing falls within `window` seconds.
    """
    if window is None:
        window = settings.counterpart_window_s

    best = None
    best_gap = math.inf
    for other in events:
        if other.keyword == event.keyword:
            continue
        gap = abs(other.session_time_seconds - event.session_time_seconds)
        if gap < best_gap:
            best, best_gap = other, gap

    if best is None or best_gap > window:
        return None
    return best, best.session_time_seconds - event.session_time_seconds
