"""
Parser for whisper.cpp transcript output.

Each line is classified on its own: blank, diagnostic noise, a bracketed
timestamp line, or plain transcript text. Anything that looks like a log
line is dropped.
"""

import re
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Pattern

from ..models.audio_data import TranscriptSegment

SILENCE_MARKER = "[BLANK_AUDIO]"

# Diagnostic line shapes printed by whisper.cpp, matched case-insensitively
DEFAULT_NOISE_PATTERNS = (
    r"^whisper_",
    r"^main:",
    r"^system_info:",
    r"^sampling:",
    r"^beam_search:",
    r"^output_",
    r"^log_mel_spectrogram",
    r"^encode:",
    r"^decode:",
    r"^run:",
    r"^model:",
    r"^\[BLANK_AUDIO\]",
    r"^processing audio",
    r"^loading model",
    r"^energy:",
    r"^speed:",
    r"^total",
    r"^file:",
    r"^n_",
    r"^ctx:",
    r"^params:",
    r"^initializing coreml",
    r"^coreml_",
    r"^cuda",
    r"^using \d+ threads",
    r"^fallback",
    r"^seeking",
    r"^ggml_",
)

# [00:00:01.500 --> 00:00:03.250]  text
TIMESTAMP_LINE = re.compile(r"^\[([^\]]*?)\s*-->\s*([^\]]*?)\]\s*(.*)$")

PLAIN_TEXT_REJECT_PREFIXES = ("[", "#", "=")


def parse_timestamp(value: str) -> timedelta:
    """
    Parse H:MM:SS.mmm into a timedelta.

    Malformed values give a zero duration instead of an error.
    """
    parts = value.strip().split(":")
    if len(parts) != 3:
        return timedelta(0)

    seconds, _, fraction = parts[2].partition(".")
    fields = [parts[0], parts[1], seconds]
    if fraction:
        fields.append(fraction)
    if not all(f.isdigit() for f in fields):
        return timedelta(0)

    millis = int(fraction.ljust(3, "0")[:3]) if fraction else 0
    return timedelta(
        hours=int(parts[0]),
        minutes=int(parts[1]),
        seconds=int(seconds),
        milliseconds=millis,
    )


class OutputParser:
    """
    Turns raw engine stdout into TranscriptSegments.

    noise_patterns replaces the default catalogue; extra_patterns extends it.
    """

    def __init__(
        self,
        noise_patterns: Iterable[str] = DEFAULT_NOISE_PATTERNS,
        extra_patterns: Iterable[str] = (),
        silence_marker: str = SILENCE_MARKER,
    ):
        self.silence_marker = silence_marker
        self._noise: List[Pattern] = [
            re.compile(p, re.IGNORECASE) for p in list(noise_patterns) + list(extra_patterns)
        ]

    def is_noise(self, line: str) -> bool:
        return any(p.search(line) for p in self._noise)

    def parse_line(self, line: str, now: Optional[datetime] = None) -> Optional[TranscriptSegment]:
        trimmed = line.strip()
        if not trimmed or self.is_noise(trimmed):
            return None

        created_at = now or datetime.now()

        match = TIMESTAMP_LINE.match(trimmed)
        if match:
            text = match.group(3).strip()
            if not text or text == self.silence_marker:
                return None
            return TranscriptSegment(
                text=text,
                start=parse_timestamp(match.group(1)),
                end=parse_timestamp(match.group(2)),
                created_at=created_at,
            )

        if (
            trimmed.startswith(PLAIN_TEXT_REJECT_PREFIXES)
            or ":" in trimmed
            or len(trimmed) <= 1
        ):
            return None

        return TranscriptSegment(text=trimmed, created_at=created_at)

    def parse(self, output: str) -> List[TranscriptSegment]:
        segments = []
        for line in output.splitlines():
            segment = self.parse_line(line)
            if segment is not None:
                segments.append(segment)
        return segments
