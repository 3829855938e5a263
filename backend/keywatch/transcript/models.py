"""Transcript and detection data models."""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional


@dataclass
class TranscriptWord:
    """A single committed transcript word."""
    id: str
    word: str
    speaker: str
    timestamp: datetime
    is_alert: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class DetectionEvent:
    """One keyword match. Immutable once created."""
    id: str
    keyword: str
    matched_text: str
    speaker: str
    timestamp: datetime
    session_time_seconds: float
    context: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class TranscriptionUpdate:
    """A cumulative transcription snapshot from the transport."""
    text: str
    speaker_label: Optional[str] = None


@dataclass
class TranscriptBatch:
    """
    The incremental result of diffing two cumulative snapshots.

    `words_to_remove` trailing entries are retracted and `words` appended
    when the batch is committed.
    """
    full_text: str
    words: List[str]
    words_to_remove: int
    speaker: str

    @property
    def chunk(self) -> str:
        """Joined text of the new words."""
        return " ".join(self.words)
