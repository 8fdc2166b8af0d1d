"""
Waveform generators used to simulate the values sensed by the device.

Every generator maps a phase (simulated elapsed signal time) to one sample.
Only the noise terms and ``UNIFORM_RANDOM`` are non-deterministic; they draw
from the ``random.Random`` held by ``Waveforms`` so tests can seed it.
"""
from __future__ import annotations

import math
import random
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

TWO_PI = 2.0 * math.pi

NOISE_AMPLITUDE = 1.0
SPIKE_PROBABILITY = 0.001
SPIKE_OFFSET = 100.0


class WaveformKind(str, Enum):
    SINE = "sin"
    NOISY_SINE = "noise-sin"
    SPIKY_NOISY_SINE = "random-spikes-sin"
    CONSTANT = "const"
    SAWTOOTH = "saw"
    RECTANGLE = "rect"
    SINC = "sinc"
    UNIFORM_RANDOM = "random"
    DEFAULT_HARMONIC = "default"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def names(cls) -> List[str]:
        return [k.value for k in cls]

    @classmethod
    def parse(cls, text: str) -> "WaveformKind":
        """Accept either the value (``noise-sin``) or the member name (``NOISY_SINE``)."""
        if isinstance(text, cls):
            return text
        key = str(text).strip().lower().replace("_", "-").replace(" ", "-")
        for kind in cls:
            if key == kind.value or key == kind.name.lower().replace("_", "-"):
                return kind
        raise ValueError(f"Unknown waveform: {text!r}. Available: {cls.names()}")


def wrap(phase: float) -> float:
    """Floored modulo into [0, 2*pi); nan for a non-finite phase."""
    if not math.isfinite(phase):
        return math.nan
    m = phase % TWO_PI
    # tiny negative phases round up to exactly 2*pi
    if m >= TWO_PI:
        m = 0.0
    return m


def sine(phase: float) -> float:
    # math.sin raises on inf; a phase overflowed by a huge scale yields nan
    if not math.isfinite(phase):
        return math.nan
    return math.sin(phase)


def constant(phase: float) -> float:
    return phase


def sawtooth(phase: float) -> float:
    return (wrap(phase) - math.pi) / math.pi


def rectangle(phase: float) -> float:
    m = wrap(phase)
    if math.isnan(m):
        return m
    return 1.0 if m > math.pi else 0.0


def sinc(phase: float) -> float:
    """Normalized sinc, sin(pi*x) / (pi*x), equal to 1.0 at x == 0."""
    if phase == 0.0:
        return 1.0
    if not math.isfinite(phase):
        return math.nan
    return float(np.sinc(phase))


def default_harmonic(phase: float) -> float:
    return (
        4.0 / math.pi * sine(phase)
        + 4.0 / 3.0 * math.pi * sine(3.0 * phase)
        + 4.0 / 5.0 * math.pi * sine(5.0 * phase)
        + 4.0 / 7.0 * math.pi * sine(7.0 * phase)
    )


class Waveforms:
    """Waveform library bound to one noise source.

    Pass ``rng`` (or ``seed``) to make the noisy generators reproducible.
    """

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None) -> None:
        self.rng = rng if rng is not None else random.Random(seed)
        self._table: Dict[WaveformKind, Callable[[float], float]] = {
            WaveformKind.SINE: sine,
            WaveformKind.NOISY_SINE: self.noisy_sine,
            WaveformKind.SPIKY_NOISY_SINE: self.spiky_noisy_sine,
            WaveformKind.CONSTANT: constant,
            WaveformKind.SAWTOOTH: sawtooth,
            WaveformKind.RECTANGLE: rectangle,
            WaveformKind.SINC: sinc,
            WaveformKind.UNIFORM_RANDOM: lambda _phase: self.uniform_random(),
            WaveformKind.DEFAULT_HARMONIC: default_harmonic,
        }

    def uniform_random(self) -> float:
        return self.rng.random()

    def noise(self) -> float:
        return NOISE_AMPLITUDE * self.rng.random()

    def noisy_sine(self, phase: float) -> float:
        return sine(phase) + self.noise()

    def spiky_noisy_sine(self, phase: float) -> float:
        v = self.noisy_sine(phase)
        if self.rng.random() >= 1.0 - SPIKE_PROBABILITY:
            v += SPIKE_OFFSET
        return v

    def noise_interval(self) -> float:
        """Bounded random magnitude in [0, 601) driving the phase advance."""
        r = self.rng
        return (r.random() * 1000.0) % 600.0 + r.random()

    def compute(self, kind: WaveformKind, phase: float) -> float:
        return self._table[kind](phase)


_default = Waveforms()


def compute(kind: WaveformKind, phase: float) -> float:
    return _default.compute(kind, phase)
