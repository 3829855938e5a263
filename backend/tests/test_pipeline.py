"""Unit tests for the outbound audio pipeline."""
import numpy as np
import pytest
from keywatch.audio.buffers import AdaptiveBufferScheduler
from keywatch.audio.ingestion import bytes_to_audio_frame, mixdown_to_mono, validate_audio_data
from keywatch.audio.models import AdaptiveState
from keywatch.audio.pipeline import process_audio_frame
from keywatch.core.config import settings
from conftest import make_frame


def test_pipeline_buffers_until_threshold():
    """Frames are gain-adjusted and held until a chunk is ready."""
    scheduler = AdaptiveBufferScheduler(AdaptiveState())
    samples = 0.35 * np.sin(np.linspace(0, 20 * np.pi, 4096))

    assert process_audio_frame(make_frame(samples), scheduler) is None
    chunk = process_audio_frame(make_frame(samples), scheduler)

    assert chunk is not None
    assert chunk.sample_count == 8192
    assert scheduler.state.current_gain > 1.0


def test_pipeline_without_gain():
    """Test pipeline leaves the gain alone when normalization is disabled."""
    original = settings.enable_gain_normalization
    settings.enable_gain_normalization = False

    try:
        scheduler = AdaptiveBufferScheduler(AdaptiveState(target_buffer_size_samples=4))
        chunk = process_audio_frame(make_frame([0.1, 0.1, 0.1, 0.1]), scheduler)

        assert scheduler.state.current_gain == pytest.approx(1.0)
        assert chunk.sample_count == 4
    finally:
        settings.enable_gain_normalization = original


def test_bytes_to_frame_mono():
    data = np.array([16384, -16384, 0], dtype="<i2").tobytes()
    frame = bytes_to_audio_frame(data, "session-1")

    np.testing.assert_allclose(frame.samples, [0.5, -0.5, 0.0])
    assert frame.sample_rate == settings.sample_rate
    assert frame.session_id == "session-1"


def test_bytes_to_frame_stereo_takes_first_channel():
    data = np.array([16384, 0, -16384, 32767], dtype="<i2").tobytes()
    frame = bytes_to_audio_frame(data, "session-2", channels=2)

    np.testing.assert_allclose(frame.samples, [0.5, -0.5])


def test_mixdown_passes_mono_through():
    samples = np.array([0.1, 0.2], dtype=np.float32)
    assert mixdown_to_mono(samples) is samples


def test_validate_audio_data():
    assert validate_audio_data(b"\x00\x00\x01\x00")
    assert not validate_audio_data(b"")
    assert not validate_audio_data(b"\x00\x00\x00")
    assert not validate_audio_data(b"\x00\x00\x00\x00\x00\x00", channels=2)
    assert not validate_audio_data(b"\x00\x00", channels=0)
