"""
Multi-source audio capture.

Runs one AudioSource per device and fans every decoded frame into a single
callback. Frames are not mixed: the sink sees one timeline in arrival order.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..utils.exceptions import CaptureError, SourceExitedError
from ..utils.logger import null_logger
from .sources import FRAME_SAMPLES, AudioSource, SourceBackend, detect_backend


class MultiSourceCapture:
    """Start/stop a fixed set of capture sources as one unit."""

    def __init__(
        self,
        device_ids: Sequence[str],
        on_audio: Callable[[np.ndarray], None],
        backend: Optional[SourceBackend] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        frame_samples: int = FRAME_SAMPLES,
        logger: Optional[logging.Logger] = None,
    ):
        if not device_ids:
            raise ValueError("At least one device id is required")

        self._device_ids = list(device_ids)
        self.on_audio = on_audio
        self.on_error = on_error
        self.backend = backend or detect_backend()
        self.frame_samples = frame_samples
        self.logger = logger or null_logger()

        self._lock = threading.Lock()
        self._running = False
        self._sources: List[AudioSource] = []

    @property
    def device_ids(self) -> List[str]:
        return list(self._device_ids)

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        """
        Start every source in order. If one fails, the ones already started
        are stopped before the error is re-raised.
        """
        with self._lock:
            if self._running:
                raise CaptureError("Capture already running")

            started: List[AudioSource] = []
            for device_id in self._device_ids:
                source = AudioSource(
                    device_id,
                    self.backend,
                    self.on_audio,
                    on_exit=self._on_source_exit,
                    frame_samples=self.frame_samples,
                    logger=self.logger,
                )
                try:
                    source.start()
                except CaptureError as e:
                    self.logger.error(f"Failed to start source {device_id}: {e}")
                    self._stop_sources(started)
                    raise

                started.append(source)

            self._sources = started
            self._running = True

        self.logger.info(f"Capture started with {len(self._device_ids)} source(s)")

    def stop(self) -> None:
        """Stop all sources and wait for them to exit. Safe to call repeatedly."""
        with self._lock:
            if not self._running:
                return

            self._running = False
            sources, self._sources = self._sources, []
            self._stop_sources(sources)

        self.logger.info("Capture stopped")

    def close(self) -> None:
        self.stop()

    def get_stats(self) -> dict:
        with self._lock:
            return {s.device_id: dict(s.stats) for s in self._sources}

    def _stop_sources(self, sources: List[AudioSource]) -> None:
        for source in sources:
            try:
                source.stop()
            except Exception as e:
                self.logger.error(f"Error stopping source {source.device_id}: {e}")
                self._report(CaptureError(
                    f"Failed to stop source {source.device_id}: {e}", source.device_id
                ))

    def _on_source_exit(self, source: AudioSource, error: SourceExitedError) -> None:
        # Called from the source's reader thread; must not take self._lock
        self._report(error)

    def _report(self, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as e:
            self.logger.error(f"Error in capture error callback: {e}")
