"""
Livescribe - live transcription of system audio and microphone.

Captures audio from one or more external processes, batches it into
overlapping windows and transcribes each window with whisper.cpp.
"""

__version__ = "1.0.0"

from .config import PipelineConfig
from .app import OutputParser, RecordingSession, WhisperCliEngine, WindowingBuffer
from .input import MultiSourceCapture
from .models import AudioWindow, TranscriptSegment

__all__ = [
    "AudioWindow",
    "MultiSourceCapture",
    "OutputParser",
    "PipelineConfig",
    "RecordingSession",
    "TranscriptSegment",
    "WhisperCliEngine",
    "WindowingBuffer",
]
