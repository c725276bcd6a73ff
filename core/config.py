from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar, Literal, cast

from pydantic import BaseModel, Field, field_validator

from controller.contracts import ServiceDeclaration

DEFAULT_STATUS_INTERVAL = 5.0
DEFAULT_DIAL_TIMEOUT = 0.2

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str | float | int) -> float:
    """Parse ``5s``/``200ms``/``1m30s`` style durations into seconds.

    Bare numbers are taken as seconds.
    """

    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


class AppCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    name: str = "status-board"
    env: str = "dev"


class LoggingCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    level: str = "INFO"
    format: Literal["json", "console"] = "json"
    log_dir: Path = Path("var/log/status_board")


class PathsCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    services_file: Path = Path("config/services.json")
    export_path: Path = Path(".")
    export_name: str = "status.json"
    import_path: Path | None = None
    import_name: str | None = None
    log_file: Path = Path("log.csv")

    @property
    def snapshot_path(self) -> Path:
        return self.export_path / self.export_name

    @property
    def import_snapshot_path(self) -> Path:
        return (self.import_path or self.export_path) / (self.import_name or self.export_name)


class MonitorCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    status_interval: float = DEFAULT_STATUS_INTERVAL
    dial_timeout: float = DEFAULT_DIAL_TIMEOUT
    command_timeout: float = 5.0

    @field_validator("status_interval", "dial_timeout", "command_timeout", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> float:
        seconds = parse_duration(value)
        if seconds <= 0:
            raise ValueError(f"duration must be positive, got {value!r}")
        return seconds


class ActionLogCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    max_bytes: int = 0


class ApiCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    enabled: bool = True
    bind_host: str = "127.0.0.1"
    port: int = 8080
    operator: str = "admin"


class Config(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    app: AppCfg = Field(default_factory=AppCfg)
    logging: LoggingCfg = Field(default_factory=LoggingCfg)
    paths: PathsCfg = Field(default_factory=PathsCfg)
    monitor: MonitorCfg = Field(default_factory=MonitorCfg)
    action_log: ActionLogCfg = Field(default_factory=ActionLogCfg)
    api: ApiCfg = Field(default_factory=ApiCfg)


def _read_yaml(path: Path) -> dict[str, Any]:
    """Safe YAML read; returns {} if file missing/empty."""
    import yaml  # lazy import

    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data or {}


def _env_duration(environ: Mapping[str, str], name: str) -> float | None:
    raw = environ.get(name, "")
    if not raw:
        return None
    try:
        seconds = parse_duration(raw)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay EXPORT_*/IMPORT_*/STATUS_INTERVAL/PORT_DIAL_TIMEOUT onto raw config data.

    Invalid or non-positive durations are ignored so the configured value (or the
    default) stays in effect.
    """

    paths = data.setdefault("paths", {}) or {}
    data["paths"] = paths
    for env_name, key in (
        ("EXPORT_PATH", "export_path"),
        ("EXPORT_NAME", "export_name"),
        ("IMPORT_PATH", "import_path"),
        ("IMPORT_NAME", "import_name"),
    ):
        value = environ.get(env_name, "")
        if value:
            paths[key] = value

    monitor = data.setdefault("monitor", {}) or {}
    data["monitor"] = monitor
    interval = _env_duration(environ, "STATUS_INTERVAL")
    if interval is not None:
        monitor["status_interval"] = interval
    dial = _env_duration(environ, "PORT_DIAL_TIMEOUT")
    if dial is not None:
        monitor["dial_timeout"] = dial

    return data


def load_config(base_dir: str | Path, environ: Mapping[str, str] | None = None) -> Config:
    """Load config models from ./config/base.yaml plus environment overrides."""

    base_path = Path(base_dir)
    base_yaml = base_path / "config" / "base.yaml"
    data = _read_yaml(base_yaml)
    if not data:
        msg = f"Missing or empty config file: {base_yaml}"
        raise FileNotFoundError(msg)

    apply_env_overrides(data, os.environ if environ is None else environ)
    return cast(Config, Config.model_validate(data))


def load_services(path: str | Path) -> list[ServiceDeclaration]:
    """Load the ordered service declarations from a JSON or YAML file.

    The file holds a top-level ``services`` list. Declarations are read once at
    startup; changing the file requires a restart.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file cannot be parsed or an entry is invalid
    """
    import yaml  # lazy import

    services_path = Path(path)
    text = services_path.read_text(encoding="utf-8")
    try:
        if services_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        preview = text if len(text) <= 300 else text[:300] + "..."
        raise ValueError(
            f"could not parse services file {services_path}: {exc}; preview: {preview!r}"
        ) from exc

    if not isinstance(data, Mapping) or not isinstance(data.get("services"), list):
        raise ValueError(f"services file {services_path} must contain a 'services' list")

    declarations: list[ServiceDeclaration] = []
    for index, item in enumerate(data["services"]):
        if not isinstance(item, Mapping):
            raise ValueError(f"services[{index}] in {services_path} must be a mapping")
        try:
            declarations.append(ServiceDeclaration.from_dict(item))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"services[{index}] in {services_path}: {exc}") from exc
    return declarations
