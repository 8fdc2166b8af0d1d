from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from .waveform import TWO_PI, Waveforms, WaveformKind

if TYPE_CHECKING:
    from .config import StreamConfig

MAX_INTERVAL_MS = 2**64 - 1


class InvalidCommandError(ValueError):
    pass


@dataclass(frozen=True)
class ToggleRunning:
    pass


@dataclass(frozen=True)
class SetWaveform:
    waveform: WaveformKind

    def __post_init__(self) -> None:
        try:
            kind = WaveformKind.parse(self.waveform)
        except ValueError as e:
            raise InvalidCommandError(str(e)) from e
        object.__setattr__(self, "waveform", kind)


@dataclass(frozen=True)
class SetInterval:
    interval_ms: int

    def __post_init__(self) -> None:
        interval = self.interval_ms
        if isinstance(interval, bool) or not isinstance(interval, int) or not 0 < interval <= MAX_INTERVAL_MS:
            raise InvalidCommandError(f"interval must be an integer of milliseconds in [1, {MAX_INTERVAL_MS}], got {interval!r}")


@dataclass(frozen=True)
class SetScale:
    scale: float

    def __post_init__(self) -> None:
        if isinstance(self.scale, bool) or not isinstance(self.scale, (int, float)) or not math.isfinite(self.scale):
            raise InvalidCommandError(f"scale must be a finite number, got {self.scale!r}")


ReconfigureCommand = Union[ToggleRunning, SetWaveform, SetInterval, SetScale]
COMMAND_TYPES = (ToggleRunning, SetWaveform, SetInterval, SetScale)


@dataclass
class StreamState:
    """Live configuration of the stream plus the phase accumulator.

    Owned by exactly one ``StreamController``; nothing else mutates it.
    """
    waveform: WaveformKind
    scale: float
    interval_ms: int
    running: bool = True
    phase: float = 0.0

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {self.interval_ms}")
        if not math.isfinite(self.scale):
            raise ValueError(f"scale must be finite, got {self.scale}")

    @classmethod
    def from_config(cls, cfg: "StreamConfig", phase: float = 0.0) -> "StreamState":
        return cls(
            waveform=cfg.waveform,
            scale=cfg.scale,
            interval_ms=cfg.interval_ms,
            running=True,
            phase=phase,
        )

    def next_value(self, waveforms: Waveforms) -> float:
        return waveforms.compute(self.waveform, self.phase)

    def advance(self, waveforms: Waveforms) -> None:
        # speed follows scale, not interval_ms
        self.phase += TWO_PI * self.scale * waveforms.noise_interval()
