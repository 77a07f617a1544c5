"""loopline - live-editable music with a real-time loop and playback engine."""

__version__ = "0.1.0"

from .config import get_config

__all__ = ["get_config"]
