"""Adaptive send-buffer scheduling for outbound audio."""
import math
from typing import Optional
from collections import deque
from keywatch.audio.models import AudioFrame, AdaptiveState, EncodedChunk
from keywatch.audio.streaming import frames_to_continuous_audio, encode_pcm16_base64
from keywatch.core.config import settings
from keywatch.core.logging import logger


class AdaptiveBufferScheduler:
    """
    Accumulates gain-adjusted frames and flushes them as encoded chunks.

    The flush threshold follows inbound message cadence: slow replies grow
    the threshold (larger, rarer chunks), fast replies shrink it.
    """

    def __init__(self, state: AdaptiveState, sample_rate: Optional[int] = None):
        """
        Initialize the scheduler.

        Args:
            state: Session adaptive state holding the threshold and last arrival time
            sample_rate: Outbound sample rate (defaults to config value)
        """
        self.state = state
        self.sample_rate = sample_rate or settings.sample_rate
        self.queue: deque = deque()
        self.queued_samples = 0

    @property
    def threshold(self) -> int:
        return self.state.target_buffer_size_samples

    def add_frame(self, frame: AudioFrame) -> Optional[EncodedChunk]:
        """
        Queue a frame, returning an encoded chunk once the threshold is reached.

        Args:
            frame: Gain-adjusted audio frame

        Returns:
            EncodedChunk when the queue was flushed, otherwise None
        """
        self.queue.append(frame)
        self.queued_samples += len(frame.samples)

        if self.queued_samples < self.state.target_buffer_size_samples:
            return None

        audio = frames_to_continuous_audio(list(self.queue))
        self.clear()

        return EncodedChunk(
            data=encode_pcm16_base64(audio),
            sample_rate=self.sample_rate,
            sample_count=len(audio)
        )

    def on_message_arrival(self, now: float) -> int:
        """
        Adapt the flush threshold to the time since the previous inbound message.

        Args:
            now: Arrival time in seconds (monotonic clock)

        Returns:
            The threshold after adaptation
        """
        last = self.state.last_message_arrival_time
        if last is not None:
            elapsed_ms = (now - last) * 1000.0
            current = self.state.target_buffer_size_samples

            if elapsed_ms > settings.high_latency_ms:
                updated = min(
                    settings.buffer_max_samples,
                    math.ceil(current * settings.buffer_growth_factor)
                )
            elif elapsed_ms < settings.low_latency_ms:
                updated = max(
                    settings.buffer_min_samples,
                    math.floor(current / settings.buffer_growth_factor)
                )
            else:
                updated = current

            if updated != current:
                logger.debug(f"Send buffer {current} -> {updated} samples (gap {elapsed_ms:.0f}ms)")
                self.state.target_buffer_size_samples = updated

        self.state.last_message_arrival_time = now
        return self.state.target_buffer_size_samples

    def clear(self) -> None:
        """Drop any queued frames."""
        self.queue.clear()
        self.queued_samples = 0
