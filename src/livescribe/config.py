"""
Runtime configuration for the capture and transcription pipeline.

Values come from constructor arguments, or from the environment (and an
optional .env file) through PipelineConfig.from_env().
"""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .utils.logger import get_logger

logger = get_logger("config")

DEFAULT_MODEL_NAME = "ggml-base.en.bin"
SUPPORTED_SAMPLE_RATE = 16000


def get_models_dir() -> Path:
    """./models when present, otherwise ~/.livescribe/models."""
    local = Path("models")
    if local.is_dir():
        return local
    return Path.home() / ".livescribe" / "models"


def default_model_path() -> str:
    return str(get_models_dir() / DEFAULT_MODEL_NAME)


def default_log_dir() -> str:
    return str(Path(tempfile.gettempdir()) / "livescribe" / "logs")


class PipelineConfig:
    """Configuration for capture, windowing and the transcription engine"""

    def __init__(
        self,
        sample_rate: int = SUPPORTED_SAMPLE_RATE,
        frame_samples: int = 480,
        tick_interval_s: float = 5.0,
        min_window_s: float = 3.0,
        overlap_s: float = 2.0,
        flush_min_s: float = 1.0,
        stop_timeout_s: float = 2.0,
        language: str = "en",
        model_path: Optional[str] = None,
        whisper_path: Optional[str] = None,
        log_dir: Optional[str] = None,
        extra_noise_patterns: Optional[List[str]] = None,
    ):
        self.sample_rate = sample_rate
        self.frame_samples = frame_samples
        self.tick_interval_s = tick_interval_s
        self.min_window_s = min_window_s
        self.overlap_s = overlap_s
        self.flush_min_s = flush_min_s
        self.stop_timeout_s = stop_timeout_s
        self.language = language
        self.model_path = model_path or default_model_path()
        self.whisper_path = whisper_path
        self.log_dir = log_dir or default_log_dir()
        self.extra_noise_patterns = list(extra_noise_patterns or [])

        # Derived parameters
        self.frame_bytes = frame_samples * 4  # float32
        self.min_window_samples = int(sample_rate * min_window_s)
        self.overlap_samples = int(sample_rate * overlap_s)
        self.flush_min_samples = int(sample_rate * flush_min_s)

    def validate(self) -> bool:
        """Validate configuration parameters"""
        if self.sample_rate != SUPPORTED_SAMPLE_RATE:
            logger.warning(f"Sample rate {self.sample_rate} not supported. Use {SUPPORTED_SAMPLE_RATE}")
            return False

        if self.frame_samples <= 0:
            logger.warning(f"Frame size must be positive, got {self.frame_samples}")
            return False

        if self.tick_interval_s <= 0:
            logger.warning(f"Tick interval must be positive, got {self.tick_interval_s}s")
            return False

        if self.min_window_s <= 0 or self.flush_min_s <= 0:
            logger.warning("Window thresholds must be positive")
            return False

        if self.overlap_s < 0 or self.overlap_s >= self.min_window_s:
            logger.warning(
                f"Overlap {self.overlap_s}s must be non-negative and shorter than "
                f"the minimum window {self.min_window_s}s"
            )
            return False

        return True

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "PipelineConfig":
        """
        Build a config from LIVESCRIBE_* variables and WHISPER_PATH.

        Keyword overrides that are not None win over the environment.
        """
        load_dotenv(env_file)

        values = {
            'model_path': os.getenv("LIVESCRIBE_MODEL"),
            'language': os.getenv("LIVESCRIBE_LANGUAGE"),
            'log_dir': os.getenv("LIVESCRIBE_LOG_DIR"),
            'whisper_path': os.getenv("WHISPER_PATH"),
            'tick_interval_s': _float_env("LIVESCRIBE_TICK_INTERVAL"),
            'min_window_s': _float_env("LIVESCRIBE_MIN_WINDOW"),
            'overlap_s': _float_env("LIVESCRIBE_OVERLAP"),
        }

        extra_noise = os.getenv("LIVESCRIBE_EXTRA_NOISE")
        if extra_noise:
            values['extra_noise_patterns'] = [p.strip() for p in extra_noise.split(";") if p.strip()]

        values.update(overrides)
        return cls(**{k: v for k, v in values.items() if v is not None})

    def to_dict(self) -> dict:
        return {
            "sample_rate": self.sample_rate,
            "frame_samples": self.frame_samples,
            "tick_interval_s": self.tick_interval_s,
            "min_window_s": self.min_window_s,
            "overlap_s": self.overlap_s,
            "flush_min_s": self.flush_min_s,
            "stop_timeout_s": self.stop_timeout_s,
            "language": self.language,
            "model_path": self.model_path,
            "whisper_path": self.whisper_path,
            "log_dir": self.log_dir,
        }


def _float_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number")
        return None
