from __future__ import annotations

import asyncio
import math
import sys
from pathlib import Path

# Ensure src/ is on sys.path so `streamdevice` is importable without installing
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from streamdevice.config import DEFAULTS, ConfigFragment, MissingFieldsError, resolve
from streamdevice.controller import CommandChannel, StreamController
from streamdevice.state import SetWaveform, StreamState
from streamdevice.transport import QueueSink
from streamdevice.waveform import WaveformKind, compute


def test_waveforms() -> None:
    assert compute(WaveformKind.SINC, 0.0) == 1.0
    assert compute(WaveformKind.SAWTOOTH, 0.0) == -1.0
    assert compute(WaveformKind.RECTANGLE, 4.0) == 1.0


def test_config() -> None:
    cfg = resolve([ConfigFragment(device_id="smoke", endpoint="-"), DEFAULTS])
    assert cfg.interval_ms == 1000
    try:
        resolve([ConfigFragment(endpoint="-")])
    except MissingFieldsError as e:
        assert "device_id" in e.fields and "scale" in e.fields
    else:
        raise AssertionError("resolution should fail without identity")


def test_stream() -> None:
    async def scenario() -> list:
        state = StreamState(WaveformKind.SINE, 0.0, 5, phase=math.pi / 2)
        sink = QueueSink()
        commands = CommandChannel()
        ctl = StreamController(state, "smoke/test/value")
        task = asyncio.ensure_future(ctl.run(sink, commands))
        first = await asyncio.wait_for(sink.queue.get(), 1.0)
        commands.put_nowait(SetWaveform(WaveformKind.CONSTANT))
        second = first
        while second[1] != state.phase:
            second = await asyncio.wait_for(sink.queue.get(), 1.0)
        commands.close()
        await asyncio.wait_for(task, 1.0)
        return [first, second]

    first, second = asyncio.run(scenario())
    assert first == ("smoke/test/value", 1.0)
    assert second == ("smoke/test/value", math.pi / 2)


def main() -> int:
    try:
        test_waveforms()
        test_config()
        test_stream()
    except Exception as e:
        print(f"SMOKE: FAIL: {e!r}")
        return 1
    print("SMOKE: PASS")
    return 0


if __name__ == "__main__":
    sys.exit(main())
