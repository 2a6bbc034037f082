"""Environment variable configuration.

Environment variables:
    SPR_DRAIN_TIMEOUT: Seconds to wait for trailing output after exit
        - Default 5.0
        - Clamped to the 0.1-60 second range, invalid values use the default

    SPR_ENCODING: Encoding used to decode stdout/stderr
        - Default utf-8 (undecodable bytes are replaced)

    SPR_INHERIT_MACHINE_ENV: Layer the process environment over the
        machine-level variables
        - true/1/yes = on
        - false/0/no = off (default)

    SPR_MACHINE_ENV_FILE: File holding machine-level variables
        - Default /etc/environment

    SPR_LOG_DEBUG: Debug logging
        - true/1/yes = on (DEBUG log written to a temp file)
        - false/0/no = off (default, INFO log on stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_DRAIN_TIMEOUT = 5.0
DEFAULT_ENCODING = "utf-8"
DEFAULT_MACHINE_ENV_FILE = "/etc/environment"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_drain_timeout(value: str | None) -> float:
    """Parse the drain timeout environment variable."""
    if not value:
        return DEFAULT_DRAIN_TIMEOUT
    try:
        timeout = float(value)
    except ValueError:
        return DEFAULT_DRAIN_TIMEOUT
    return max(0.1, min(timeout, 60.0))


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "silent-process-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"spr_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """Runner configuration.

    Attributes:
        drain_timeout: Seconds to wait for each stream after process exit
        encoding: Encoding for decoding process output
        inherit_machine_env: Include machine-level variables in child env
        machine_env_file: Path of the machine-level variables file
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug is on)
    """

    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    encoding: str = DEFAULT_ENCODING
    inherit_machine_env: bool = False
    machine_env_file: str = DEFAULT_MACHINE_ENV_FILE
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(drain_timeout={self.drain_timeout}, "
            f"encoding={self.encoding}, "
            f"inherit_machine_env={self.inherit_machine_env}, "
            f"machine_env_file={self.machine_env_file}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("SPR_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        drain_timeout=_parse_drain_timeout(os.environ.get("SPR_DRAIN_TIMEOUT")),
        encoding=os.environ.get("SPR_ENCODING") or DEFAULT_ENCODING,
        inherit_machine_env=_parse_bool(
            os.environ.get("SPR_INHERIT_MACHINE_ENV"), default=False
        ),
        machine_env_file=os.environ.get("SPR_MACHINE_ENV_FILE") or DEFAULT_MACHINE_ENV_FILE,
        log_debug=log_debug,
        log_file=log_file,
    )


# Lazily loaded global config
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the global config (used by tests)."""
    global _config
    _config = load_config()
    return _config
