"""
Stream configuration resolution.

Each source (command line, environment, JSON file, CLI argument defaults)
produces a sparse ``ConfigFragment``. ``resolve`` merges them by precedence,
highest first, and validates the result into an immutable ``StreamConfig``.

Field names per source:

    field             env var                  JSON key
    device_id         STREAM_DEVICE_ID         device_id
    endpoint          STREAM_ENDPOINT          endpoint
    interface         INTERFACE_NAME           interface
    sensor_id         STREAM_SENSOR_ID         sensor_id
    waveform          MATH_FUNCTION            waveform | math_function
    interval_ms       INTERVAL_BTW_SAMPLES     interval_ms | interval_btw_samples
    scale             SCALE                    scale
    control_endpoint  STREAM_CONTROL_ENDPOINT  control_endpoint
"""
from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .state import MAX_INTERVAL_MS
from .waveform import WaveformKind

logger = logging.getLogger(__name__)

FIELDS: Tuple[str, ...] = (
    "device_id",
    "endpoint",
    "interface",
    "sensor_id",
    "waveform",
    "interval_ms",
    "scale",
    "control_endpoint",
)

REQUIRED_FIELDS: Tuple[str, ...] = (
    "device_id",
    "endpoint",
    "interface",
    "sensor_id",
    "waveform",
    "interval_ms",
    "scale",
)

ENV_VARS: Dict[str, str] = {
    "device_id": "STREAM_DEVICE_ID",
    "endpoint": "STREAM_ENDPOINT",
    "interface": "INTERFACE_NAME",
    "sensor_id": "STREAM_SENSOR_ID",
    "waveform": "MATH_FUNCTION",
    "interval_ms": "INTERVAL_BTW_SAMPLES",
    "scale": "SCALE",
    "control_endpoint": "STREAM_CONTROL_ENDPOINT",
}

FILE_ALIASES: Dict[str, str] = {
    "math_function": "waveform",
    "interval_btw_samples": "interval_ms",
}


class ConfigError(Exception):
    pass


class MissingFieldsError(ConfigError):
    def __init__(self, missing: Sequence[str]) -> None:
        self.fields = tuple(missing)
        super().__init__(f"missing required configuration: {', '.join(self.fields)}")


class InvalidFieldsError(ConfigError):
    def __init__(self, problems: Mapping[str, str]) -> None:
        self.problems = dict(problems)
        detail = "; ".join(f"{k}: {v}" for k, v in self.problems.items())
        super().__init__(f"invalid configuration: {detail}")


class ConfigFileError(ConfigError):
    pass


@dataclass(frozen=True)
class ConfigFragment:
    """Partial configuration from a single source. ``None`` means absent."""
    device_id: Optional[str] = None
    endpoint: Optional[str] = None
    interface: Optional[str] = None
    sensor_id: Optional[str] = None
    waveform: Optional[WaveformKind] = None
    interval_ms: Optional[int] = None
    scale: Optional[float] = None
    control_endpoint: Optional[str] = None
    source: str = "unknown"

    def present(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in FIELDS if _is_set(getattr(self, name))}


@dataclass(frozen=True)
class StreamConfig:
    device_id: str
    endpoint: str
    interface: str
    sensor_id: str
    waveform: WaveformKind
    interval_ms: int
    scale: float
    control_endpoint: Optional[str] = None

    @property
    def destination_path(self) -> str:
        return f"{self.interface}/{self.sensor_id}/value"


# Argument defaults of the CLI layer; always passed last.
DEFAULTS = ConfigFragment(
    interface="org.astarte-platform.genericsensors.Values",
    sensor_id="test",
    waveform=WaveformKind.DEFAULT_HARMONIC,
    interval_ms=1000,
    scale=1.0,
    source="defaults",
)


def _is_set(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def merge(fragments: Sequence[ConfigFragment]) -> ConfigFragment:
    """Field-wise first present value, scanning from highest precedence."""
    values: Dict[str, Any] = {}
    for name in FIELDS:
        for frag in fragments:
            value = getattr(frag, name)
            if _is_set(value):
                values[name] = value
                break
    return ConfigFragment(source="merged", **values)


def resolve(fragments: Sequence[ConfigFragment]) -> StreamConfig:
    merged = merge(fragments)
    for name, value in merged.present().items():
        origin = next(f.source for f in fragments if _is_set(getattr(f, name)))
        logger.debug(f"config {name}={value!r} (from {origin})")

    missing = [name for name in REQUIRED_FIELDS if not _is_set(getattr(merged, name))]
    if missing:
        raise MissingFieldsError(missing)

    problems: Dict[str, str] = {}
    waveform = merged.waveform
    if not isinstance(waveform, WaveformKind):
        try:
            waveform = WaveformKind.parse(waveform)
        except ValueError as e:
            problems["waveform"] = str(e)
    interval = merged.interval_ms
    if isinstance(interval, bool) or not isinstance(interval, int):
        problems["interval_ms"] = f"expected an integer number of milliseconds, got {interval!r}"
    elif interval <= 0:
        problems["interval_ms"] = f"must be positive, got {interval}"
    elif interval > MAX_INTERVAL_MS:
        problems["interval_ms"] = f"must be at most {MAX_INTERVAL_MS}, got {interval}"
    scale = merged.scale
    if isinstance(scale, bool) or not isinstance(scale, (int, float)):
        problems["scale"] = f"expected a number, got {scale!r}"
    elif not math.isfinite(scale):
        problems["scale"] = f"must be finite, got {scale}"
    if problems:
        raise InvalidFieldsError(problems)

    return StreamConfig(
        device_id=merged.device_id,
        endpoint=merged.endpoint,
        interface=merged.interface,
        sensor_id=merged.sensor_id,
        waveform=waveform,
        interval_ms=int(interval),
        scale=float(scale),
        control_endpoint=merged.control_endpoint,
    )


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw source value into the field's type; raise ValueError if it cannot."""
    if not _is_set(value):
        return None
    if name == "waveform":
        return WaveformKind.parse(value)
    if name == "interval_ms":
        if isinstance(value, bool):
            raise ValueError(f"expected an integer, got {value!r}")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"expected an integer, got {value!r}")
            return int(value)
        return int(value)
    if name == "scale":
        if isinstance(value, bool):
            raise ValueError(f"expected a number, got {value!r}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _fragment_from(raw: Mapping[str, Any], source: str, label: Mapping[str, str]) -> ConfigFragment:
    values: Dict[str, Any] = {}
    problems: Dict[str, str] = {}
    for name, value in raw.items():
        try:
            values[name] = _coerce(name, value)
        except (TypeError, ValueError) as e:
            problems[label.get(name, name)] = str(e)
    if problems:
        raise InvalidFieldsError(problems)
    return ConfigFragment(source=source, **values)


def env_fragment(environ: Optional[Mapping[str, str]] = None) -> ConfigFragment:
    env = os.environ if environ is None else environ
    raw = {name: env.get(var) for name, var in ENV_VARS.items()}
    return _fragment_from(raw, "env", ENV_VARS)


def file_fragment(path: str) -> ConfigFragment:
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigFileError(f"config file not found: {p}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigFileError(f"cannot read config file {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigFileError(f"config file {p} must contain a JSON object")

    # accept both a flat object and a "stream" section
    section = data.get("stream", data)
    if not isinstance(section, dict):
        raise ConfigFileError(f"'stream' section of {p} must be a JSON object")

    raw: Dict[str, Any] = {}
    for key, value in section.items():
        name = FILE_ALIASES.get(key, key)
        if name in FIELDS:
            raw[name] = value
        else:
            logger.warning(f"ignoring unknown key {key!r} in {p}")
    return _fragment_from(raw, f"file:{p}", {})


def cli_fragment(**options: Any) -> ConfigFragment:
    """Fragment from command-line options; options left as ``None`` are absent."""
    raw = {name: value for name, value in options.items() if name in FIELDS}
    return _fragment_from(raw, "cli", {})


def describe(cfg: StreamConfig) -> List[str]:
    return [f"{f.name}={getattr(cfg, f.name)}" for f in fields(cfg)]
