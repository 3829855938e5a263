"""Incremental reconciliation of cumulative transcription snapshots."""
import re
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Iterable, List, Optional
from keywatch.transcript.models import TranscriptBatch, TranscriptionUpdate, TranscriptWord
from keywatch.core.config import settings
from keywatch.core.logging import logger

UNKNOWN_SPEAKER = "Unknown"


def format_speaker_label(label: str) -> str:
    """Turn a raw segment label like "speaker_1" into "Speaker 1"."""
    spaced = label.replace("_", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


class TranscriptReconciler:
    """
    Merges a continuously rewritten transcription into a stable word history.

    The upstream only appends or corrects a suffix, so a prefix scan is
    enough to find where two snapshots diverge. State:

    - `previous_full_text`: last seen cumulative string
    - `history`: every committed word, unbounded, owned by the session
    - `display_window`: the most recent words, oldest evicted first
    """

    def __init__(
        self,
        window_size: Optional[int] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        self.window_size = window_size or settings.display_window_size
        self.now = now
        self.previous_full_text = ""
        self.current_speaker: Optional[str] = None
        self.history: List[TranscriptWord] = []
        self.display_window: Deque[TranscriptWord] = deque(maxlen=self.window_size)
        self._next_id = 0

    @property
    def word_count(self) -> int:
        return len(self.history)

    def begin(self, update: TranscriptionUpdate) -> Optional[TranscriptBatch]:
        """
        Diff a new snapshot against the previous one.

        Returns None when there is nothing to commit: the snapshot is not
        longer than the previous one, or it only retracts words. A pure
        retraction advances `previous_full_text` but leaves history as is;
        only a retraction paired with new words is applied.
        """
        new_full_text = update.text
        if len(new_full_text) <= len(self.previous_full_text):
            return None

        old_words = self.previous_full_text.split()
        new_words = new_full_text.split()

        k = 0
        while k < len(old_words) and k < len(new_words) and old_words[k] == new_words[k]:
            k += 1

        words_to_remove = len(old_words) - k
        words_to_add = new_words[k:]

        if not words_to_add:
            self.previous_full_text = new_full_text
            return None

        self.previous_full_text = new_full_text

        speaker = UNKNOWN_SPEAKER
        if update.speaker_label:
            speaker = format_speaker_label(update.speaker_label)
            self.current_speaker = speaker

        return TranscriptBatch(
            full_text=new_full_text,
            words=words_to_add,
            words_to_remove=words_to_remove,
            speaker=speaker
        )

    def commit(self, batch: TranscriptBatch, alerted: Iterable[int] = ()) -> List[TranscriptWord]:
        """
        Apply a batch: retract diverged words, then append the new ones.

        Args:
            batch: Result of `begin`
            alerted: Indices into `batch.words` to flag as alerts

        Returns:
            The newly created entries, in spoken order
        """
        alerted = set(alerted)
        remove = min(batch.words_to_remove, len(self.history))
        if remove:
            del self.history[-remove:]
            for _ in range(min(remove, len(self.display_window))):
                self.display_window.pop()
            logger.debug(f"Retracted {remove} words")

        timestamp = self.now()
        entries = []
        for index, word in enumerate(batch.words):
            entries.append(TranscriptWord(
                id=f"entry-{self._next_id}",
                word=word,
                speaker=batch.speaker,
                timestamp=timestamp,
                is_alert=index in alerted
            ))
            self._next_id += 1

        self.history.extend(entries)
        self.display_window.extend(entries)
        return entries

    def reset_prefix(self) -> None:
        """Forget the previous snapshot (turn completed upstream)."""
        self.previous_full_text = ""

    def reset(self) -> None:
        """Clear all state for a new session."""
        self.previous_full_text = ""
        self.current_speaker = None
        self.history.clear()
        self.display_window.clear()
        self._next_id = 0
