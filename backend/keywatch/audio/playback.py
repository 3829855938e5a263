"""Scheduling of inline audio replies from the transcription stream."""
import time
from dataclasses import dataclass
from typing import Callable, Optional, Set
from keywatch.audio.streaming import decode_pcm16_base64
from keywatch.core.config import settings
from keywatch.core.logging import logger


@dataclass(eq=False)
class ScheduledSource:
    """One decoded reply queued for (muted) playback."""
    start_time: float
    duration: float
    stopped: bool = False

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def stop(self) -> None:
        self.stopped = True


class PlaybackScheduler:
    """
    Plays decoded replies back-to-back on a muted output.

    Replies are not needed for transcription; only the scheduling and
    teardown bookkeeping is kept so sources can be stopped on session end.
    """

    def __init__(self, sample_rate: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.sample_rate = sample_rate or settings.playback_sample_rate
        self.clock = clock
        self.next_start_time = 0.0
        self.sources: Set[ScheduledSource] = set()
        self.closed = False

    async def enqueue(self, payload: str) -> ScheduledSource:
        """
        Decode a base64 PCM16 reply and schedule it after the previous one.

        Raises:
            PlaybackDecodeError: if the payload cannot be decoded
        """
        samples = decode_pcm16_base64(payload)
        duration = len(samples) / float(self.sample_rate)

        self._prune()
        self.next_start_time = max(self.next_start_time, self.clock())
        source = ScheduledSource(start_time=self.next_start_time, duration=duration)
        self.next_start_time += duration
        self.sources.add(source)
        return source

    def _prune(self) -> None:
        now = self.clock()
        self.sources = {s for s in self.sources if s.end_time > now}

    def stop_all(self) -> None:
        """Stop every scheduled source."""
        for source in self.sources:
            source.stop()
        if self.sources:
            logger.debug(f"Stopped {len(self.sources)} playback sources")
        self.sources.clear()

    def close(self) -> None:
        """Release the output; safe to call more than once."""
        if self.closed:
            return
        self.stop_all()
        self.closed = True

    def reset(self) -> None:
        """Reopen the output for a new session."""
        self.stop_all()
        self.next_start_time = 0.0
        self.closed = False
