from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import wave
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence, Union

import numpy as np

from ..models.audio_data import TranscriptSegment
from ..utils.exceptions import (
    EncodeFailedError,
    ExecutableNotFoundError,
    ModelNotFoundError,
    ProcessFailedError,
)
from ..utils.logger import null_logger
from .output_parser import OutputParser

WHISPER_EXECUTABLE_NAMES = ("whisper-cli", "whisper", "whisper-cpp")


def whisper_search_locations() -> List[Path]:
    home = Path.home()
    return [
        Path("/usr/local/bin"),
        Path("/usr/bin"),
        Path("/opt/homebrew/bin"),
        home / ".local" / "bin",
        home / "whisper.cpp" / "build" / "bin",
        home / "whisper.cpp",
        Path("whisper.cpp") / "build" / "bin",
        Path("whisper.cpp"),
    ]


def find_whisper_executable(env_var: str = "WHISPER_PATH") -> Optional[str]:
    """
    Locate the whisper.cpp CLI: $WHISPER_PATH, then PATH, then the usual
    install locations. Returns None when nothing is found.
    """
    override = os.getenv(env_var)
    if override and os.path.isfile(override):
        return override

    for name in WHISPER_EXECUTABLE_NAMES:
        path = shutil.which(name)
        if path:
            return path

    for location in whisper_search_locations():
        for name in WHISPER_EXECUTABLE_NAMES:
            candidate = location / name
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)

    return None


def write_wav(target: Union[str, Path, BinaryIO], samples: np.ndarray, sample_rate: int = 16000) -> None:
    """
    Write float samples as 16-bit mono PCM WAV with a plain 44-byte header.

    Samples are clamped to [-1, 1] before scaling so loud input saturates
    instead of wrapping.
    """
    audio = np.nan_to_num(np.asarray(samples, dtype=np.float32))
    audio_int16 = (np.clip(audio, -1.0, 1.0) * 32767).astype('<i2')
    if isinstance(target, Path):
        target = str(target)

    try:
        with wave.open(target, "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)
            wf.setframerate(sample_rate)
            wf.setnframes(len(audio_int16))
            wf.writeframes(audio_int16.tobytes())
    except (OSError, wave.Error) as exc:
        raise EncodeFailedError(f"Failed to write WAV file: {exc}") from exc


class WhisperCliEngine:
    """Batch transcription through the whisper.cpp command-line tool."""

    EXPECTED_SAMPLE_RATE = 16_000

    def __init__(
        self,
        model_path: str,
        executable: Optional[str] = None,
        language: str = "en",
        parser: Optional[OutputParser] = None,
        extra_args: Sequence[str] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or null_logger()

        if not os.path.isfile(model_path):
            raise ModelNotFoundError(
                f"Model not found at {model_path} - download a whisper.cpp model "
                f"(e.g. ggml-base.en.bin) or pass --model"
            )

        self.whisper_path = executable or find_whisper_executable()
        if not self.whisper_path:
            raise ExecutableNotFoundError(
                "whisper.cpp executable not found. Install whisper.cpp "
                "(whisper-cli) or set WHISPER_PATH"
            )

        self.model_path = model_path
        self.language = language
        self.parser = parser or OutputParser()
        self.extra_args = list(extra_args)

    def build_command(self, wav_path: str) -> List[str]:
        # whisper-cli prints no progress unless asked; --no-prints silences the rest
        return [
            self.whisper_path,
            "-m", self.model_path,
            "-f", wav_path,
            "-l", self.language,
            "--no-prints",
            *self.extra_args,
        ]

    def transcribe(self, samples: np.ndarray) -> List[TranscriptSegment]:
        """
        Transcribe one window of samples.

        Raises:
            EncodeFailedError: the temporary WAV could not be written
            ProcessFailedError: whisper could not run or exited non-zero
        """
        try:
            handle, wav_path = tempfile.mkstemp(prefix="livescribe-", suffix=".wav")
            os.close(handle)
        except OSError as exc:
            raise EncodeFailedError(f"Failed to create temp file: {exc}") from exc

        try:
            write_wav(wav_path, samples, self.EXPECTED_SAMPLE_RATE)
            self.logger.debug(f"Running whisper on {wav_path} ({len(samples)} samples)")
            output = self._run(self.build_command(wav_path))
        finally:
            try:
                os.remove(wav_path)
            except OSError as e:
                self.logger.warning(f"Could not remove {wav_path}: {e}")

        self.logger.debug(f"Whisper output: {output}")
        segments = self.parser.parse(output)
        self.logger.info(f"Transcribed {len(segments)} segments")
        return segments

    def _run(self, command: List[str]) -> str:
        try:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            self.logger.error(f"Whisper failed to start: {exc}")
            raise ProcessFailedError(f"Failed to run whisper: {exc}") from exc

        stderr = result.stderr.decode("utf-8", errors="replace")
        for line in stderr.splitlines():
            if line.strip():
                self.logger.debug(f"whisper: {line}")

        if result.returncode != 0:
            self.logger.error(f"Whisper failed: exit code {result.returncode}")
            raise ProcessFailedError(
                f"whisper exited with code {result.returncode}", result.returncode
            )

        return result.stdout.decode("utf-8", errors="replace")

    def close(self) -> None:
        pass
