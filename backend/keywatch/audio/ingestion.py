"""Helper functions for ingesting and converting incoming audio data."""
import numpy as np
import time
from typing import Optional
from keywatch.audio.models import AudioFrame
from keywatch.audio.streaming import pcm16_to_float
from keywatch.core.config import settings
from keywatch.core.logging import logger


def mixdown_to_mono(samples: np.ndarray) -> np.ndarray:
    """
    Reduce a (frames, channels) array to mono float32.

    The first channel is used, matching what a single-input capture node
    delivers; 1D input is passed through.
    """
    if samples.ndim == 1:
        return samples.astype(np.float32, copy=False)
    return np.ascontiguousarray(samples[:, 0], dtype=np.float32)


def bytes_to_audio_frame(
    data: bytes,
    session_id: str,
    sample_rate: Optional[int] = None,
    channels: int = 1
) -> AudioFrame:
    """
    Convert raw interleaved PCM16 bytes to a mono AudioFrame.

    Args:
        data: Raw PCM int16 little-endian bytes
        session_id: Session the frame belongs to
        sample_rate: Sample rate (defaults to config value)
        channels: Number of interleaved channels in `data`

    Returns:
        AudioFrame object
    """
    if sample_rate is None:
        sample_rate = settings.sample_rate

    samples = pcm16_to_float(data)
    if channels > 1:
        samples = mixdown_to_mono(samples.reshape(-1, channels))

    return AudioFrame(
        samples=samples,
        sample_rate=sample_rate,
        timestamp=time.time(),
        session_id=session_id
    )


def validate_audio_data(data: bytes, channels: int = 1) -> bool:
    """
    Validate incoming audio data.

    Args:
        data: Raw audio bytes
        channels: Number of interleaved channels

    Returns:
        True if valid, False otherwise
    """
    if channels < 1:
        logger.warning(f"Invalid channel count {channels}")
        return False

    if len(data) == 0:
        logger.warning("Received empty audio data")
        return False

    # Whole int16 samples for every channel
    if len(data) % (2 * channels) != 0:
        logger.warning(f"Audio data size {len(data)} is not multiple of {2 * channels} bytes")
        return False

    return True
