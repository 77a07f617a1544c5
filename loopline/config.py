"""Centralized configuration for loopline.

This module provides a single source of truth for all configuration values
and environment variables used throughout the engine.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


@dataclass
class MIDIConfig:
    """MIDI playback and capture configuration."""

    default_bpm: float = 120.0
    default_biab: int = 4
    default_channel: int = 1  # 1-based, as shown to users
    note_velocity: int = 100

    # Input capture
    listen_grace_ms: int = 200  # Drain time before subscribers are attached
    input_poll_interval_ms: float = 2.0

    # Loop planning
    loop_lookahead_ms: float = 100.0  # How far ahead of a bar to render it


@dataclass
class TimingConfig:
    """Timeline jitter thresholds in microseconds."""

    good_jitter_us: int = 500
    warning_jitter_us: int = 2_000
    critical_jitter_us: int = 5_000


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Module-specific log levels
    midi_log_level: str = "INFO"
    timeline_log_level: str = "INFO"
    control_log_level: str = "INFO"


@dataclass
class AppConfig:
    """Main application configuration."""

    midi: MIDIConfig = field(default_factory=MIDIConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Application metadata
    app_name: str = "loopline"
    version: str = "0.1.0"
    debug: bool = False

    def __post_init__(self):
        """Load environment variables and validate configuration."""
        self._load_from_environment()
        self._validate_config()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        # MIDI configuration
        self.midi.default_bpm = float(
            os.getenv("LOOPLINE_BPM", str(self.midi.default_bpm))
        )
        self.midi.default_biab = int(
            os.getenv("LOOPLINE_BIAB", str(self.midi.default_biab))
        )
        self.midi.default_channel = int(
            os.getenv("LOOPLINE_CHANNEL", str(self.midi.default_channel))
        )
        self.midi.note_velocity = int(
            os.getenv("LOOPLINE_NOTE_VELOCITY", str(self.midi.note_velocity))
        )
        self.midi.listen_grace_ms = int(
            os.getenv("LOOPLINE_LISTEN_GRACE_MS", str(self.midi.listen_grace_ms))
        )
        self.midi.input_poll_interval_ms = float(
            os.getenv(
                "LOOPLINE_INPUT_POLL_INTERVAL_MS",
                str(self.midi.input_poll_interval_ms),
            )
        )
        self.midi.loop_lookahead_ms = float(
            os.getenv("LOOPLINE_LOOP_LOOKAHEAD_MS", str(self.midi.loop_lookahead_ms))
        )

        # Timing configuration
        self.timing.good_jitter_us = int(
            os.getenv("TIMELINE_GOOD_JITTER_US", str(self.timing.good_jitter_us))
        )
        self.timing.warning_jitter_us = int(
            os.getenv("TIMELINE_WARNING_JITTER_US", str(self.timing.warning_jitter_us))
        )
        self.timing.critical_jitter_us = int(
            os.getenv(
                "TIMELINE_CRITICAL_JITTER_US", str(self.timing.critical_jitter_us)
            )
        )

        # Logging configuration
        self.logging.level = os.getenv("LOG_LEVEL", self.logging.level).upper()
        self.logging.midi_log_level = os.getenv(
            "MIDI_LOG_LEVEL", self.logging.midi_log_level
        ).upper()
        self.logging.timeline_log_level = os.getenv(
            "TIMELINE_LOG_LEVEL", self.logging.timeline_log_level
        ).upper()
        self.logging.control_log_level = os.getenv(
            "CONTROL_LOG_LEVEL", self.logging.control_log_level
        ).upper()

        # Application settings
        self.debug = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes", "on")

    def _validate_config(self):
        """Validate configuration values."""
        if not (1.0 <= self.midi.default_bpm <= 300.0):
            raise ValueError(
                f"Invalid BPM: {self.midi.default_bpm}. Must be between 1-300."
            )

        if not (1 <= self.midi.default_biab <= 6):
            raise ValueError(
                f"Invalid beats-in-a-bar: {self.midi.default_biab}. Must be between 1-6."
            )

        if not (1 <= self.midi.default_channel <= 16):
            raise ValueError(
                f"Invalid MIDI channel: {self.midi.default_channel}. Must be between 1-16."
            )

        if not (0 <= self.midi.note_velocity <= 127):
            raise ValueError(
                f"Invalid note velocity: {self.midi.note_velocity}. Must be between 0-127."
            )

        if self.midi.loop_lookahead_ms < 0 or self.midi.listen_grace_ms < 0:
            raise ValueError("Lookahead and grace periods must not be negative.")

        if self.midi.input_poll_interval_ms <= 0:
            raise ValueError(
                f"Invalid input poll interval: {self.midi.input_poll_interval_ms}. "
                "Must be positive."
            )

        if not (
            0
            < self.timing.good_jitter_us
            <= self.timing.warning_jitter_us
            <= self.timing.critical_jitter_us
        ):
            raise ValueError("Jitter thresholds must be positive and ascending.")

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        for level_name, level_value in [
            ("LOG_LEVEL", self.logging.level),
            ("MIDI_LOG_LEVEL", self.logging.midi_log_level),
            ("TIMELINE_LOG_LEVEL", self.logging.timeline_log_level),
            ("CONTROL_LOG_LEVEL", self.logging.control_log_level),
        ]:
            if level_value not in valid_log_levels:
                raise ValueError(
                    f"Invalid {level_name}: {level_value}. Must be one of {valid_log_levels}."
                )


# Global configuration instance
config = AppConfig()


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    return config


def reload_config():
    """Reload configuration from environment variables."""
    global config
    config = AppConfig()
    return config


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return config.debug
