"""
Windowing buffer between capture and transcription.

Incoming frames accumulate in one buffer. A periodic tick drains the whole
buffer into a window once it holds at least min_window_s of audio and keeps
the last overlap_s as leading context for the next window. Only one window
is transcribed at a time; a tick that finds one in flight is dropped.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import numpy as np

from ..models.audio_data import AudioWindow
from ..utils.logger import null_logger


class WindowingBuffer:

    def __init__(
        self,
        on_window: Callable[[AudioWindow], None],
        sample_rate: int = 16000,
        tick_interval_s: float = 5.0,
        min_window_s: float = 3.0,
        overlap_s: float = 2.0,
        flush_min_s: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.on_window = on_window
        self.sample_rate = sample_rate
        self.tick_interval_s = tick_interval_s
        self.min_window_samples = int(sample_rate * min_window_s)
        self.overlap_samples = int(sample_rate * overlap_s)
        self.flush_min_samples = int(sample_rate * flush_min_s)
        self.logger = logger or null_logger()

        self._lock = threading.Lock()
        self._chunks: List[np.ndarray] = []
        self._count = 0
        self._in_flight = False
        self._idle = threading.Event()
        self._idle.set()
        self._next_index = 0

        self._stop_event = threading.Event()
        self._ticker: Optional[threading.Thread] = None

        self.stats = {
            'windows': 0,
            'skipped_ticks': 0,
            'short_ticks': 0,
            'failed_windows': 0,
        }

    @classmethod
    def from_config(cls, config, on_window, logger=None) -> "WindowingBuffer":
        return cls(
            on_window,
            sample_rate=config.sample_rate,
            tick_interval_s=config.tick_interval_s,
            min_window_s=config.min_window_s,
            overlap_s=config.overlap_s,
            flush_min_s=config.flush_min_s,
            logger=logger,
        )

    @property
    def buffered_samples(self) -> int:
        with self._lock:
            return self._count

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def append(self, samples: np.ndarray) -> None:
        """Capture sink. Runs on source reader threads, so it only copies."""
        frame = np.array(samples, dtype=np.float32)
        if not frame.size:
            return
        with self._lock:
            self._chunks.append(frame)
            self._count += frame.size

    def reset(self) -> None:
        with self._lock:
            self._chunks = []
            self._count = 0
            self._next_index = 0

    def _take(self, min_samples: int, retain: int) -> Optional[np.ndarray]:
        # Caller holds self._lock
        if self._count == 0 or self._count < min_samples:
            return None

        window = np.concatenate(self._chunks)

        if retain and self._count > retain:
            self._chunks = [window[-retain:].copy()]
            self._count = retain
        else:
            self._chunks = []
            self._count = 0

        return window

    def tick(self) -> bool:
        """
        Try to submit a window. Returns True when a transcription was started.
        """
        with self._lock:
            busy = self._in_flight
            samples = None if busy else self._take(self.min_window_samples, self.overlap_samples)
            if busy:
                self.stats['skipped_ticks'] += 1
            elif samples is None:
                self.stats['short_ticks'] += 1
            else:
                self._in_flight = True
                self._idle.clear()
                window = AudioWindow(samples, self.sample_rate, index=self._next_index)
                self._next_index += 1

        if busy:
            self.logger.debug("Transcription still running, skipping tick")
            return False
        if samples is None:
            return False

        self.logger.debug(
            f"Submitting window {window.index}: {len(samples)} samples ({window.duration_s:.2f}s)"
        )
        worker = threading.Thread(
            target=self._run_window, args=(window,), name="transcription", daemon=True
        )
        worker.start()
        return True

    def _submit(self, window: AudioWindow) -> bool:
        try:
            self.on_window(window)
        except Exception as e:
            self.logger.error(f"Window {window.index} failed: {e}")
            return False
        return True

    def _count_result(self, ok: bool) -> None:
        # Caller holds self._lock
        self.stats['windows' if ok else 'failed_windows'] += 1

    def _run_window(self, window: AudioWindow) -> None:
        ok = False
        try:
            ok = self._submit(window)
        finally:
            with self._lock:
                self._count_result(ok)
                self._in_flight = False
                self._idle.set()

    def get_stats(self) -> dict:
        with self._lock:
            return dict(self.stats)

    def start(self) -> None:
        """Start the periodic tick thread."""
        if self._ticker is not None and self._ticker.is_alive():
            return

        self._stop_event = threading.Event()
        self._ticker = threading.Thread(
            target=self._tick_loop, args=(self._stop_event,), name="window-ticker", daemon=True
        )
        self._ticker.start()
        self.logger.debug(f"Window ticker started ({self.tick_interval_s}s interval)")

    def _tick_loop(self, stop_event: threading.Event) -> None:
        # wait() returns True as soon as stop is signalled, False on timeout
        while not stop_event.wait(self.tick_interval_s):
            self.tick()
        self.logger.debug("Window ticker received stop signal")

    def stop_ticking(self) -> None:
        self._stop_event.set()
        if self._ticker is not None:
            self._ticker.join()
            self._ticker = None

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no transcription is in flight. False on timeout."""
        return self._idle.wait(timeout)

    def flush(self) -> Optional[AudioWindow]:
        """
        Submit whatever is left (at least flush_min_s) synchronously,
        regardless of an in-flight transcription. The buffer ends up empty.
        """
        with self._lock:
            samples = self._take(self.flush_min_samples, 0)
            if samples is None:
                self._chunks = []
                self._count = 0
                return None
            window = AudioWindow(samples, self.sample_rate, index=self._next_index, final=True)
            self._next_index += 1

        self.logger.debug(f"Flushing final window: {len(samples)} samples")
        ok = self._submit(window)
        with self._lock:
            self._count_result(ok)
        return window
