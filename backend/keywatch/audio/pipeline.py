"""Outbound audio pipeline: gain normalization followed by adaptive buffering."""
import time
from typing import Optional
from keywatch.audio.models import AudioFrame, EncodedChunk
from keywatch.audio.buffers import AdaptiveBufferScheduler
from keywatch.audio.dsp.gain import normalize_gain
from keywatch.core.config import settings
from keywatch.core.logging import logger


def process_audio_frame(frame: AudioFrame, scheduler: AdaptiveBufferScheduler) -> Optional[EncodedChunk]:
    """
    Run one captured frame through the outbound pipeline.

    Steps:
    1. Gain normalization (peak AGC, session-scoped gain)
    2. Adaptive buffering (flush to an encoded chunk once the threshold is met)

    Args:
        frame: Captured mono frame
        scheduler: Session scheduler; its adaptive state carries the gain too

    Returns:
        EncodedChunk ready to send, or None while still buffering
    """
    start_time = time.time()
    processed = frame

    if settings.enable_gain_normalization:
        processed = normalize_gain(processed, scheduler.state)

    # Verify output format matches input
    if len(processed.samples) != len(frame.samples):
        logger.warning(f"Frame length mismatch: {len(frame.samples)} -> {len(processed.samples)}")
        processed = frame

    chunk = scheduler.add_frame(processed)

    processing_time = (time.time() - start_time) * 1000  # Convert to ms
    frame_ms = 1000.0 * len(frame.samples) / max(frame.sample_rate, 1)
    if processing_time > frame_ms:
        logger.warning(f"Frame processing took {processing_time:.2f}ms (frame is {frame_ms:.0f}ms)")

    return chunk
