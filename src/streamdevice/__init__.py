from . import waveform, config, state, controller, transport, receiver

__all__ = [
    "waveform",
    "config",
    "state",
    "controller",
    "transport",
    "receiver",
]
