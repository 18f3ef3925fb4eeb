import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
DEFAULT_K6_IMAGE = "grafana/k6:latest"

# k6 duration strings: 30s, 1m, 1m30s, 2h, 500ms
_K6_DURATION = re.compile(r"^(\d+(\.\d+)?(ms|s|m|h))+$")


def normalize_duration(value: str) -> str:
    """Turn TEST_DURATION into a k6 duration; bare numbers are minutes"""
    value = str(value).strip()
    if re.match(r"^\d+$", value):
        return f"{value}m"
    if _K6_DURATION.match(value):
        return value
    raise ConfigError(f"Invalid test duration: {value!r} (expected minutes or a k6 duration like 30s, 1m)")


def _getenv(environ: Mapping[str, str], name: str, default: str) -> str:
    # empty strings fall back to the default, like ${VAR:-default}
    value = environ.get(name)
    return value if value else default


def env_test_type(environ: Optional[Mapping[str, str]] = None) -> str:
    return _getenv(os.environ if environ is None else environ, "TEST_TYPE", "full")


@dataclass
class RunConfig:
    test_env: str = "test"
    max_vus: int = 50
    test_type: str = "full"
    test_duration: str = "5"
    timestamp: str = field(default_factory=lambda: datetime.now().strftime(TIMESTAMP_FORMAT))
    k6_image: str = DEFAULT_K6_IMAGE
    k6_dir: Path = field(default_factory=lambda: Path.cwd() / "k6")
    results_root: Path = field(default_factory=lambda: Path.cwd() / "results")
    network_mode: str = "host"
    target_url: Optional[str] = None

    def __post_init__(self):
        try:
            self.max_vus = int(self.max_vus)
        except (TypeError, ValueError):
            raise ConfigError(f"MAX_VUS must be an integer, got {self.max_vus!r}")
        if self.max_vus < 1:
            raise ConfigError(f"MAX_VUS must be at least 1, got {self.max_vus}")
        self.k6_dir = Path(self.k6_dir).resolve()
        self.results_root = Path(self.results_root).resolve()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "RunConfig":
        """Build the config from environment variables; non-None overrides win"""
        env = os.environ if environ is None else environ
        values = {
            "test_env": _getenv(env, "TEST_ENV", "test"),
            "max_vus": _getenv(env, "MAX_VUS", "50"),
            "test_type": env_test_type(env),
            "test_duration": _getenv(env, "TEST_DURATION", "5"),
            "k6_image": _getenv(env, "K6_IMAGE", DEFAULT_K6_IMAGE),
            "k6_dir": Path(_getenv(env, "K6_DIR", str(Path.cwd() / "k6"))),
            "results_root": Path(_getenv(env, "RESULTS_ROOT", str(Path.cwd() / "results"))),
            "network_mode": _getenv(env, "DOCKER_NETWORK", "host"),
            "target_url": env.get("TARGET_URL") or None,
        }
        if env.get("TIMESTAMP"):
            values["timestamp"] = env["TIMESTAMP"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def duration(self) -> str:
        """k6 duration for baseline, load and stress; raises ConfigError when malformed"""
        return normalize_duration(self.test_duration)

    @property
    def duration_label(self) -> str:
        try:
            return self.duration
        except ConfigError:
            return self.test_duration

    @property
    def results_dir(self) -> Path:
        return self.results_root / f"{self.test_type}-{self.test_env}-{self.timestamp}"
