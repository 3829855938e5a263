"""Configuration settings for the Keywatch backend."""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Audio capture settings
    sample_rate: int = 16000  # Hz, capture and upstream rate
    playback_sample_rate: int = 24000  # Hz, inline audio replies
    frame_size: int = 4096  # samples per capture callback
    channels: int = 1  # default interleaved channels of incoming frames
    max_channels: int = 8

    # Gain normalization (AGC)
    enable_gain_normalization: bool = True
    gain_target_peak: float = 0.7
    gain_min: float = 0.25
    gain_max: float = 4.0
    gain_smoothing: float = 0.02
    gain_silence_threshold: float = 0.01

    # Adaptive send buffer (samples)
    buffer_initial_samples: int = 4096 * 2
    buffer_min_samples: int = 4096  # ~0.25 s at 16 kHz
    buffer_max_samples: int = 4096 * 10  # ~2.5 s at 16 kHz
    high_latency_ms: float = 800.0
    low_latency_ms: float = 300.0
    buffer_growth_factor: float = 1.5

    # Transcript and detections
    display_window_size: int = 100
    detection_log_size: int = 100
    mention_pulse_ms: int = 1500
    initial_keywords: List[str] = []

    # Correlation
    proximity_threshold_s: float = 5.0
    tension_line_threshold: int = 5
    counterpart_window_s: float = 10.0

    # Upstream transcription stream
    transport_url: str = "wss://generativelanguage.googleapis.com/ws/google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
    transport_model: str = "models/gemini-2.5-flash-native-audio-preview-09-2025"
    transport_voice: str = "Zephyr"
    api_key: Optional[str] = None
    transport_open_timeout_s: float = 10.0

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "KEYWATCH_"


settings = Settings()
