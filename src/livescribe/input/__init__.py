from .audio_capture import MultiSourceCapture
from .sources import (
    AudioSource,
    AVFoundationBackend,
    CommandBackend,
    PulseAudioBackend,
    SourceBackend,
    detect_backend,
)

__all__ = [
    "AudioSource",
    "AVFoundationBackend",
    "CommandBackend",
    "MultiSourceCapture",
    "PulseAudioBackend",
    "SourceBackend",
    "detect_backend",
]
