from .audio_data import AudioWindow, TranscriptSegment

__all__ = ["AudioWindow", "TranscriptSegment"]
