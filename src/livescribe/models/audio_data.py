from dataclasses import dataclass, field
from datetime import datetime, timedelta

import numpy as np


@dataclass
class AudioWindow:
    samples: np.ndarray   # float32 mono samples, owned by the receiver
    sample_rate: int      # sample rate in Hz
    index: int = 0        # submission order, starting at 0 per recording
    final: bool = False   # tail flush issued on stop

    @property
    def duration_s(self) -> float:
        return len(self.samples) / float(self.sample_rate)


@dataclass(frozen=True)
class TranscriptSegment:
    """
    One unit of transcribed text.

    start/end are offsets relative to the start of the window the text came
    from (zero when the engine printed no timestamps); created_at is the
    wall-clock time the segment was parsed.
    """
    text: str
    start: timedelta = timedelta(0)
    end: timedelta = timedelta(0)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def start_ms(self) -> int:
        return self.start // timedelta(milliseconds=1)

    @property
    def end_ms(self) -> int:
        return self.end // timedelta(milliseconds=1)

    def to_dict(self) -> dict:
        return {
            'text': self.text,
            'start_ms': self.start_ms,
            'end_ms': self.end_ms,
            'created_at': self.created_at.isoformat(),
        }
