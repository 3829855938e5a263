"""Gain normalization and automatic gain control (AGC)."""
import numpy as np
from keywatch.audio.models import AudioFrame, AdaptiveState
from keywatch.core.config import settings


def compute_target_gain(peak: float, current_gain: float) -> float:
    """
    Gain that would bring the frame peak to the target level.

    During silence there is no pressure to change, so the current gain is kept.
    """
    if peak <= settings.gain_silence_threshold:
        return current_gain
    target = settings.gain_target_peak / peak
    return float(np.clip(target, settings.gain_min, settings.gain_max))


def normalize_gain(frame: AudioFrame, state: AdaptiveState) -> AudioFrame:
    """
    Peak-based AGC with exponential smoothing.

    The smoothed gain lives in `state.current_gain` and persists across frames
    for the whole session. Output is hard-clipped to [-1.0, 1.0].

    Args:
        frame: Input audio frame (float32, mono)
        state: Session adaptive state, mutated in place

    Returns:
        New AudioFrame with the same length and metadata
    """
    if len(frame.samples) == 0:
        return frame

    peak = float(np.max(np.abs(frame.samples)))
    target_gain = compute_target_gain(peak, state.current_gain)

    # Smoothly move current gain towards target gain
    state.current_gain += (target_gain - state.current_gain) * settings.gain_smoothing

    adjusted = np.clip(frame.samples * state.current_gain, -1.0, 1.0).astype(np.float32)

    return AudioFrame(
        samples=adjusted,
        sample_rate=frame.sample_rate,
        timestamp=frame.timestamp,
        session_id=frame.session_id
    )
