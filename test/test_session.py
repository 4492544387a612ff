import threading
import time

import numpy as np
import pytest

from livescribe.app.session import RecordingSession
from livescribe.config import PipelineConfig
from livescribe.models.audio_data import TranscriptSegment
from livescribe.state_manager import AppState
from livescribe.utils.exceptions import CaptureError, ProcessFailedError

from conftest import SAMPLE_RATE, wait_for


class FakeEngine:
    """Returns one segment per window describing its length."""

    def __init__(self, fail=False):
        self.fail = fail
        self.windows = []
        self.closed = False
        self.lock = threading.Lock()

    def transcribe(self, samples):
        with self.lock:
            self.windows.append(np.array(samples))
        if self.fail:
            raise ProcessFailedError("whisper exited with code 1", 1)
        return [TranscriptSegment(text=f"window of {len(samples)}")]

    def close(self):
        self.closed = True


@pytest.fixture
def config(tmp_path):
    # The ticker is effectively disabled; tests drive tick() themselves
    return PipelineConfig(tick_interval_s=60, log_dir=str(tmp_path))


def test_window_then_flush(config, backend):
    engine = FakeEngine()
    segments = []
    session = RecordingSession(config, engine, ["tone=4,silence=2"], backend=backend,
                               on_segment=segments.append)

    session.start()
    assert session.is_recording
    assert wait_for(lambda: session.windowing.buffered_samples == 6 * SAMPLE_RATE)

    assert session.windowing.tick() is True
    assert session.windowing.wait_idle(5)
    assert len(engine.windows[0]) == 6 * SAMPLE_RATE
    assert session.windowing.buffered_samples == 2 * SAMPLE_RATE

    assert session.stop() is True
    assert session.wait_flushed(5)

    assert [len(w) for w in engine.windows] == [96000, 32000]
    assert session.state_manager.current_state == AppState.IDLE
    assert [s.text for s in segments] == ["window of 96000", "window of 32000"]
    assert session.full_transcript() == "window of 96000 window of 32000"


def test_short_recording_flushes_nothing(config, backend):
    engine = FakeEngine()
    session = RecordingSession(config, engine, ["tone=0.5"], backend=backend)

    session.start()
    assert wait_for(lambda: session.windowing.buffered_samples == 8000)
    session.stop()
    assert session.wait_flushed(5)

    assert engine.windows == []
    assert session.segments() == []


def test_transcription_failure_is_reported(config, backend):
    engine = FakeEngine(fail=True)
    errors = []
    session = RecordingSession(config, engine, ["tone=4"], backend=backend, on_error=errors.append)

    session.start()
    try:
        assert wait_for(lambda: session.windowing.buffered_samples == 4 * SAMPLE_RATE)
        assert session.windowing.tick() is True
        assert session.windowing.wait_idle(5)

        assert len(errors) == 1
        assert isinstance(errors[0], ProcessFailedError)
        # Capture keeps running after a failed window
        assert session.is_recording
    finally:
        session.stop()
        session.wait_flushed(5)


def test_start_failure_enters_error_state(config, backend):
    session = RecordingSession(config, FakeEngine(), ["tone=1", "missing"], backend=backend)

    with pytest.raises(CaptureError):
        session.start()

    assert session.state_manager.current_state == AppState.ERROR
    assert not session.is_recording
    assert all(p.poll() is not None for p in backend.processes)
    assert session.stop() is False


def test_stop_when_idle(config, backend):
    session = RecordingSession(config, FakeEngine(), ["tone=1"], backend=backend)
    assert session.stop() is False
    assert session.wait_flushed(1)


def test_start_twice_is_rejected(config, backend):
    session = RecordingSession(config, FakeEngine(), ["tone=1"], backend=backend)
    session.start()
    try:
        with pytest.raises(CaptureError):
            session.start()
    finally:
        session.stop()
        session.wait_flushed(5)


def test_record_again_after_stop(config, backend):
    engine = FakeEngine()
    session = RecordingSession(config, engine, ["tone=1.5"], backend=backend)

    for _ in range(2):
        session.start()
        assert wait_for(lambda: session.windowing.buffered_samples == 24000)
        session.stop()
        assert session.wait_flushed(5)

    assert [len(w) for w in engine.windows] == [24000, 24000]
    assert len(session.segments()) == 2


def test_level_callback(config, backend):
    levels = []
    session = RecordingSession(config, FakeEngine(), ["tone=0.5"], backend=backend,
                               on_level=levels.append)

    session.start()
    try:
        assert wait_for(lambda: len(levels) > 0)
    finally:
        session.stop()
        session.wait_flushed(5)

    assert levels[0] == pytest.approx(2.5)


def test_clear_and_close(config, backend):
    engine = FakeEngine()
    session = RecordingSession(config, engine, ["tone=2"], backend=backend)

    session.start()
    assert wait_for(lambda: session.windowing.buffered_samples == 32000)
    session.stop()
    assert session.wait_flushed(5)
    assert len(session.segments()) == 1

    session.clear()
    assert session.segments() == []
    assert session.full_transcript() == ""

    session.close()
    assert engine.closed


def test_status_reports_progress(config, backend):
    session = RecordingSession(config, FakeEngine(), ["tone=1"], backend=backend)

    status = session.get_status()
    assert status['state'] == "idle"
    assert status['devices'] == ["tone=1"]

    session.start()
    try:
        assert wait_for(lambda: session.windowing.buffered_samples == 16000)
        status = session.get_status()
        assert status['is_recording'] is True
        assert status['buffered_seconds'] == pytest.approx(1.0)
        assert status['sources']["tone=1"]['samples'] == 16000
    finally:
        session.stop()
        session.wait_flushed(5)


def test_empty_device_list(config):
    with pytest.raises(ValueError):
        RecordingSession(config, FakeEngine(), [])


def test_restart_during_flush_keeps_both_tails(config, backend, monkeypatch):
    engine = FakeEngine()
    session = RecordingSession(config, engine, ["tone=2"], backend=backend)
    flush = session.windowing.flush
    finals = []

    def slow_flush():
        time.sleep(0.2)
        window = flush()
        finals.append(window)
        return window

    monkeypatch.setattr(session.windowing, "flush", slow_flush)

    session.start()
    assert wait_for(lambda: session.windowing.buffered_samples == 32000)
    session.stop()

    # Restart right away, while the first tail is still being flushed
    session.start()
    assert wait_for(lambda: session.windowing.buffered_samples == 32000)
    session.stop()
    assert session.wait_flushed(5)

    assert [len(w) for w in engine.windows] == [32000, 32000]
    assert [w.index for w in finals] == [0, 0]
    assert [s.text for s in session.segments()] == ["window of 32000", "window of 32000"]
    assert session.state_manager.current_state == AppState.IDLE


def test_unexpected_engine_error_is_reported(config, backend):
    class BrokenEngine(FakeEngine):
        def transcribe(self, samples):
            raise RuntimeError("engine crashed")

    errors = []
    session = RecordingSession(config, BrokenEngine(), ["tone=4"], backend=backend,
                               on_error=errors.append)

    session.start()
    try:
        assert wait_for(lambda: session.windowing.buffered_samples == 4 * SAMPLE_RATE)
        assert session.windowing.tick() is True
        assert session.windowing.wait_idle(5)
    finally:
        session.stop()
        session.wait_flushed(5)

    # The periodic window and the final flush both failed
    assert [type(e) for e in errors] == [RuntimeError, RuntimeError]
    assert session.get_status()['windowing']['failed_windows'] == 2


def test_stop_does_not_wait_past_timeout(tmp_path, backend):
    config = PipelineConfig(tick_interval_s=60, stop_timeout_s=0.1, log_dir=str(tmp_path))
    release = threading.Event()

    class StuckEngine(FakeEngine):
        def transcribe(self, samples):
            release.wait(5)
            return super().transcribe(samples)

    engine = StuckEngine()
    session = RecordingSession(config, engine, ["tone=4"], backend=backend)

    session.start()
    assert wait_for(lambda: session.windowing.buffered_samples == 4 * SAMPLE_RATE)
    assert session.windowing.tick() is True

    started = time.monotonic()
    assert session.stop() is True
    assert time.monotonic() - started < 2
    assert session.state_manager.current_state == AppState.FLUSHING

    release.set()
    assert session.wait_flushed(5)
    assert sorted(len(w) for w in engine.windows) == [32000, 64000]
