"""
Recording session: capture -> windowing -> whisper -> segment log.

This is the object a UI drives. Segments, errors and audio levels are
pushed out through callbacks; the segment log can also be read back.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..config import PipelineConfig
from ..input.audio_capture import MultiSourceCapture
from ..input.sources import SourceBackend
from ..models.audio_data import AudioWindow, TranscriptSegment
from ..state_manager import AppState, StateManager
from ..utils.exceptions import CaptureError
from ..utils.logger import null_logger
from .windowing import WindowingBuffer


class RecordingSession:

    def __init__(
        self,
        config: PipelineConfig,
        engine,
        device_ids: Sequence[str],
        backend: Optional[SourceBackend] = None,
        on_segment: Optional[Callable[[TranscriptSegment], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_level: Optional[Callable[[float], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not device_ids:
            raise ValueError("At least one device id is required")

        self.config = config
        self.engine = engine
        self.backend = backend
        self.on_segment = on_segment
        self.on_error = on_error
        self.on_level = on_level
        self.logger = logger or null_logger()

        self._device_ids = list(device_ids)
        self.state_manager = StateManager(logger=self.logger)
        self.windowing = WindowingBuffer.from_config(
            config, self._transcribe_window, logger=self.logger
        )

        self._control_lock = threading.Lock()
        self._capture: Optional[MultiSourceCapture] = None
        self._flush_thread: Optional[threading.Thread] = None

        self._segments_lock = threading.Lock()
        self._segments: List[TranscriptSegment] = []

    @property
    def device_ids(self) -> List[str]:
        return list(self._device_ids)

    @property
    def is_recording(self) -> bool:
        return self.state_manager.current_state == AppState.RECORDING

    def start(self) -> None:
        """
        Start all sources and the window ticker.

        Raises:
            CaptureError: a source failed to start; nothing is left running
        """
        with self._control_lock:
            if self._capture is not None:
                raise CaptureError("Recording already running")

            # The previous tail must be submitted before the buffer is reused
            if self._flush_thread is not None:
                self._flush_thread.join()
                self._flush_thread = None

            self.logger.info(f"Starting recording with {len(self._device_ids)} device(s)")
            capture = MultiSourceCapture(
                self._device_ids,
                self._on_audio,
                backend=self.backend,
                on_error=self._report_error,
                frame_samples=self.config.frame_samples,
                logger=self.logger,
            )

            self.windowing.reset()
            try:
                capture.start()
            except CaptureError as e:
                self.logger.error(f"Failed to start audio capture: {e}")
                self.state_manager.handle_error(str(e))
                raise

            self._capture = capture
            self.windowing.start()
            self.state_manager.transition_to(
                AppState.RECORDING, metadata={'devices': self.device_ids}
            )

    def stop(self) -> bool:
        """
        Stop capture, then transcribe the remaining tail in the background.

        Returns False when nothing was recording.
        """
        with self._control_lock:
            if self._capture is None:
                return False

            self.logger.info("Stopping recording")
            self.windowing.stop_ticking()
            try:
                self._capture.stop()
            finally:
                self._capture = None

            if not self.windowing.wait_idle(self.config.stop_timeout_s):
                self.logger.warning(
                    f"Transcription did not finish within {self.config.stop_timeout_s}s"
                )

            self.state_manager.transition_to(AppState.FLUSHING)
            self._flush_thread = threading.Thread(
                target=self._flush_remaining, name="flush", daemon=True
            )
            self._flush_thread.start()
            return True

    def wait_flushed(self, timeout: Optional[float] = None) -> bool:
        thread = self._flush_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def close(self) -> None:
        self.stop()
        self.wait_flushed(self.config.stop_timeout_s)
        self.engine.close()

    def _flush_remaining(self) -> None:
        self.windowing.flush()
        with self._segments_lock:
            total = len(self._segments)
        self.logger.info(f"Recording stopped, total segments: {total}")
        if self.state_manager.current_state == AppState.FLUSHING:
            self.state_manager.transition_to(AppState.IDLE)

    def _on_audio(self, samples: np.ndarray) -> None:
        self.windowing.append(samples)

        if self.on_level is not None and samples.size:
            level = float(np.mean(np.abs(samples))) * 10
            try:
                self.on_level(level)
            except Exception as e:
                self.logger.error(f"Error in level callback: {e}")

    def _transcribe_window(self, window: AudioWindow) -> None:
        self.logger.debug(
            f"Processing window {window.index}: {len(window.samples)} samples"
            f"{' (final)' if window.final else ''}"
        )
        try:
            segments = self.engine.transcribe(window.samples)
        except Exception as e:
            # Logged and counted by the windowing buffer
            self._report_error(e)
            raise

        for segment in segments:
            with self._segments_lock:
                self._segments.append(segment)
            self.logger.debug(f"New segment: {segment.text}")
            if self.on_segment is not None:
                try:
                    self.on_segment(segment)
                except Exception as e:
                    self.logger.error(f"Error in segment callback: {e}")

    def _report_error(self, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as e:
            self.logger.error(f"Error in error callback: {e}")

    def segments(self) -> List[TranscriptSegment]:
        with self._segments_lock:
            return list(self._segments)

    def full_transcript(self) -> str:
        return " ".join(s.text for s in self.segments())

    def clear(self) -> None:
        with self._segments_lock:
            self._segments = []

    def get_status(self) -> dict:
        capture = self._capture
        with self._segments_lock:
            segment_count = len(self._segments)
        return {
            **self.state_manager.get_state_info(),
            'is_recording': self.is_recording,
            'devices': self.device_ids,
            'segments': segment_count,
            'buffered_seconds': self.windowing.buffered_samples / float(self.config.sample_rate),
            'transcribing': self.windowing.in_flight,
            'windowing': self.windowing.get_stats(),
            'sources': capture.get_stats() if capture is not None else {},
        }
