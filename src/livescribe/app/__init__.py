from .output_parser import OutputParser, parse_timestamp
from .session import RecordingSession
from .speech_to_text_engine import WhisperCliEngine, find_whisper_executable, write_wav
from .windowing import WindowingBuffer

__all__ = [
    "OutputParser",
    "RecordingSession",
    "WhisperCliEngine",
    "WindowingBuffer",
    "find_whisper_executable",
    "parse_timestamp",
    "write_wav",
]
