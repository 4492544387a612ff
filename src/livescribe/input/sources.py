"""
Audio source adapters.

A source is one external process writing raw little-endian float32 mono
16 kHz samples to stdout until it is killed. Backends decide which program
to spawn for a device id; AudioSource owns the process and its reader thread.
"""

from __future__ import annotations

import logging
import os
import platform
import subprocess
import threading
from typing import Callable, List, Optional, Protocol, Sequence

import numpy as np

from ..utils.exceptions import (
    CaptureError,
    SourceExitedError,
    SpawnFailedError,
    StreamUnavailableError,
)
from ..utils.logger import null_logger

SAMPLE_RATE = 16000
FRAME_SAMPLES = 480  # 30ms at 16kHz
BYTES_PER_SAMPLE = 4

# Sentinel device id for macOS system audio
SCREENCAPTUREKIT_DEVICE = "screencapturekit"


class SourceBackend(Protocol):
    name: str

    def start(self, device_id: str) -> subprocess.Popen: ...

    def default_monitor(self) -> str: ...

    def default_input(self) -> str: ...


def _spawn(argv: Sequence[str], device_id: str) -> subprocess.Popen:
    try:
        return subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, ValueError) as exc:
        raise SpawnFailedError(
            f"Failed to start {argv[0]} for {device_id}: {exc}", device_id
        ) from exc


def _command_output(argv: Sequence[str]) -> str:
    try:
        result = subprocess.run(
            list(argv), capture_output=True, text=True, check=True, timeout=10
        )
    except FileNotFoundError as exc:
        raise CaptureError(f"{argv[0]} not found: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        raise CaptureError(f"{' '.join(argv)} failed: {exc.stderr.strip()}") from exc
    except subprocess.TimeoutExpired as exc:
        raise CaptureError(f"{' '.join(argv)} timed out") from exc
    return result.stdout


class CommandBackend:
    """
    Runs an arbitrary argv template; "{device}" in any argument is replaced
    with the device id.
    """

    def __init__(self, argv: Sequence[str], name: str = "command"):
        if not argv:
            raise ValueError("argv must not be empty")
        self.argv = list(argv)
        self.name = name

    def command_for(self, device_id: str) -> List[str]:
        return [arg.replace("{device}", device_id) for arg in self.argv]

    def start(self, device_id: str) -> subprocess.Popen:
        return _spawn(self.command_for(device_id), device_id)

    def default_monitor(self) -> str:
        raise CaptureError(f"{self.name} backend has no default monitor; pass a device id")

    def default_input(self) -> str:
        raise CaptureError(f"{self.name} backend has no default input; pass a device id")


class PulseAudioBackend:
    """PulseAudio / PipeWire capture through parec."""

    name = "pulseaudio"

    def start(self, device_id: str) -> subprocess.Popen:
        return _spawn(
            [
                "parec",
                "--format=float32le",
                f"--rate={SAMPLE_RATE}",
                "--channels=1",
                "-d", device_id,
            ],
            device_id,
        )

    def list_sources(self) -> List[dict]:
        """Sources from `pactl list sources short`, flagged as monitor/input."""
        sources = []
        for line in _command_output(["pactl", "list", "sources", "short"]).splitlines():
            fields = line.split()
            if len(fields) < 2:
                continue
            name = fields[1]
            is_monitor = ".monitor" in name
            sources.append({
                'name': name,
                'is_monitor': is_monitor,
                'is_input': not is_monitor,
            })
        return sources

    def default_monitor(self) -> str:
        sink = _command_output(["pactl", "get-default-sink"]).strip()
        if not sink:
            raise CaptureError("No default sink found")
        return sink + ".monitor"

    def default_input(self) -> str:
        source = _command_output(["pactl", "get-default-source"]).strip()
        if not source:
            raise CaptureError("No default source found")

        # A monitor is not a microphone; pick the first real input instead
        if ".monitor" in source:
            for candidate in self.list_sources():
                if candidate['is_input']:
                    return candidate['name']
            raise CaptureError("No input source found")

        return source


class AVFoundationBackend:
    """
    macOS capture: microphones through ffmpeg/AVFoundation (device id is the
    AVFoundation audio index), system audio through a ScreenCaptureKit helper
    binary for the "screencapturekit" device id.
    """

    name = "avfoundation"

    def __init__(self, helper_path: Optional[str] = None):
        self.helper_path = helper_path or os.getenv("LIVESCRIBE_SCK_HELPER")

    def start(self, device_id: str) -> subprocess.Popen:
        if device_id == SCREENCAPTUREKIT_DEVICE:
            if not self.helper_path:
                raise SpawnFailedError(
                    "ScreenCaptureKit helper not configured; set LIVESCRIBE_SCK_HELPER",
                    device_id,
                )
            return _spawn([self.helper_path], device_id)

        return _spawn(
            [
                "ffmpeg",
                "-loglevel", "quiet",
                "-f", "avfoundation",
                "-i", f"none:{device_id}",
                "-ar", str(SAMPLE_RATE),
                "-ac", "1",
                "-f", "f32le",
                "pipe:1",
            ],
            device_id,
        )

    def default_monitor(self) -> str:
        return SCREENCAPTUREKIT_DEVICE

    def default_input(self) -> str:
        # ffmpeg lists devices on stderr as "[AVFoundation ...] [index] name"
        try:
            result = subprocess.run(
                ["ffmpeg", "-f", "avfoundation", "-list_devices", "true", "-i", ""],
                capture_output=True, text=True, timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise CaptureError(f"Could not list AVFoundation devices: {exc}") from exc

        in_audio = False
        for line in result.stderr.splitlines():
            if "AVFoundation audio devices" in line:
                in_audio = True
                continue
            if "AVFoundation video devices" in line:
                in_audio = False
                continue
            if not in_audio or "] [" not in line:
                continue
            index, _, name = line.rsplit("] [", 1)[1].partition("]")
            lowered = name.lower()
            if any(v in lowered for v in ("blackhole", "soundflower", "loopback")):
                continue
            return index.strip()

        raise CaptureError("No input audio device found (is ffmpeg installed? brew install ffmpeg)")


def detect_backend() -> SourceBackend:
    """Pick the capture backend for the running platform."""
    system = platform.system()
    if system == "Linux":
        return PulseAudioBackend()
    if system == "Darwin":
        return AVFoundationBackend()
    raise CaptureError(f"No audio capture backend for {system}; use a CommandBackend")


class AudioSource:
    """
    One running capture process plus the thread reading its stdout.

    Instances are single-use: start() once, stop() once. The coordinator
    builds fresh sources for every recording.
    """

    def __init__(
        self,
        device_id: str,
        backend: SourceBackend,
        on_audio: Callable[[np.ndarray], None],
        on_exit: Optional[Callable[["AudioSource", SourceExitedError], None]] = None,
        frame_samples: int = FRAME_SAMPLES,
        logger: Optional[logging.Logger] = None,
    ):
        self.device_id = device_id
        self.backend = backend
        self.on_audio = on_audio
        self.on_exit = on_exit
        self.frame_bytes = frame_samples * BYTES_PER_SAMPLE
        self.logger = logger or null_logger()

        self.process: Optional[subprocess.Popen] = None
        self.stop_event = threading.Event()
        self.reader_thread: Optional[threading.Thread] = None
        self.stats = {
            'frames': 0,
            'samples': 0,
            'callback_errors': 0,
        }

    @property
    def running(self) -> bool:
        return (
            self.process is not None
            and self.process.poll() is None
            and not self.stop_event.is_set()
        )

    def start(self) -> None:
        if self.process is not None:
            raise CaptureError(f"Source {self.device_id} already started", self.device_id)

        self.process = self.backend.start(self.device_id)
        stream = self.process.stdout
        if stream is None:
            self._kill()
            self.process.wait()
            raise StreamUnavailableError(
                f"No output stream for {self.device_id}", self.device_id
            )

        self.reader_thread = threading.Thread(
            target=self._read_loop,
            args=(stream,),
            name=f"source-{self.device_id}",
            daemon=True,
        )
        self.reader_thread.start()
        self.logger.info(
            f"Source started: {self.device_id} ({self.backend.name}, pid {self.process.pid})"
        )

    def stop(self) -> None:
        """Signal, kill, join the reader, then reap the process, in that order."""
        self.stop_event.set()

        if self.process is None:
            return

        self._kill()

        if self.reader_thread is not None:
            self.reader_thread.join()

        returncode = self.process.wait()
        if self.process.stdout is not None:
            self.process.stdout.close()

        self.logger.info(
            f"Source stopped: {self.device_id} (exit {returncode}, "
            f"{self.stats['samples']} samples)"
        )

    def _kill(self) -> None:
        try:
            self.process.kill()
        except ProcessLookupError:
            pass

    def _read_loop(self, stream) -> None:
        pending = b""

        while not self.stop_event.is_set():
            try:
                data = stream.read1(self.frame_bytes)
            except (OSError, ValueError):
                break
            if not data:
                break

            # Carry a partial trailing sample over to the next read
            data = pending + data
            usable = len(data) - len(data) % BYTES_PER_SAMPLE
            pending = data[usable:]
            if not usable:
                continue

            samples = np.frombuffer(data[:usable], dtype='<f4')
            self.stats['frames'] += 1
            self.stats['samples'] += len(samples)

            try:
                self.on_audio(samples)
            except Exception as e:
                self.stats['callback_errors'] += 1
                self.logger.error(f"Error in audio callback for {self.device_id}: {e}")

        if self.stop_event.is_set():
            return

        returncode = self.process.wait()
        self.logger.warning(f"Source {self.device_id} exited unexpectedly (exit {returncode})")
        if self.on_exit is not None:
            self.on_exit(self, SourceExitedError(
                f"Audio source {self.device_id} exited with code {returncode}",
                self.device_id,
                returncode,
            ))
