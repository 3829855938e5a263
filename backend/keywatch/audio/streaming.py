"""Helper functions for encoding outbound audio and decoding inline replies."""
import base64
import binascii
import numpy as np
from keywatch.audio.models import AudioFrame
from keywatch.core.errors import PlaybackDecodeError
from keywatch.core.logging import logger


def frames_to_continuous_audio(frames: list[AudioFrame]) -> np.ndarray:
    """
    Concatenate multiple frames into a continuous audio array.

    Args:
        frames: List of audio frames

    Returns:
        Concatenated float32 array of samples
    """
    if not frames:
        return np.array([], dtype=np.float32)

    # Ensure all frames have same sample rate
    sample_rate = frames[0].sample_rate
    for frame in frames:
        if frame.sample_rate != sample_rate:
            logger.warning(f"Sample rate mismatch: {frame.sample_rate} != {sample_rate}")

    return np.concatenate([frame.samples for frame in frames])


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Scale [-1, 1] floats to little-endian int16 bytes, saturating at the int16 range."""
    scaled = np.clip(samples.astype(np.float64) * 32768.0, -32768, 32767)
    return scaled.astype("<i2").tobytes()


def pcm16_to_float(data: bytes) -> np.ndarray:
    """Convert little-endian int16 bytes to float32 samples in [-1, 1)."""
    return (np.frombuffer(data, dtype="<i2").astype(np.float32) / 32768.0).astype(np.float32)


def encode_pcm16_base64(samples: np.ndarray) -> str:
    """Encode float samples as base64 PCM16 for the transcription transport."""
    return base64.b64encode(float_to_pcm16(samples)).decode("ascii")


def decode_pcm16_base64(payload: str) -> np.ndarray:
    """
    Decode a base64 PCM16 mono payload into float32 samples.

    Raises:
        PlaybackDecodeError: if the payload is not valid base64 or not whole int16 samples
    """
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PlaybackDecodeError(f"Invalid base64 audio payload: {e}") from e

    if len(raw) % 2 != 0:
        raise PlaybackDecodeError(f"Audio payload size {len(raw)} is not multiple of 2 bytes")

    return pcm16_to_float(raw)
