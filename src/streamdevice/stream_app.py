from __future__ import annotations

import asyncio
import json
import logging
import signal
import socket
from typing import Optional

import typer

from .config import (
    DEFAULTS,
    ConfigError,
    ConfigFileError,
    StreamConfig,
    cli_fragment,
    describe,
    env_fragment,
    file_fragment,
    resolve,
)
from .controller import CommandChannel, StreamController, StreamTransportError
from .receiver import split_path, start_receiver
from .state import StreamState
from .transport import TransportError, open_sink, parse_udp_endpoint
from .waveform import Waveforms, WaveformKind

logger = logging.getLogger(__name__)

app = typer.Typer(help="Synthetic telemetry device: stream a reconfigurable waveform.")

DEFAULT_CONTROL_ENDPOINT = "udp://127.0.0.1:9010"
WAVEFORM_CHOICES = ", ".join(WaveformKind.names())


def _waveform_option(value: Optional[str]) -> Optional[WaveformKind]:
    if value is None:
        return None
    try:
        return WaveformKind.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def setup_logging(level: str) -> None:
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        raise typer.BadParameter(f"Unknown log level: {level}", param_hint="--log-level")
    logging.basicConfig(level=lvl, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _install_shutdown(commands: CommandChannel) -> None:
    """Close the command channel on SIGINT/SIGTERM so the stream stops cleanly."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, commands.close)
        except (NotImplementedError, RuntimeError, ValueError):
            # no loop signal handlers on this platform; Ctrl+C raises KeyboardInterrupt instead
            logger.debug(f"cannot install handler for {sig!r}")


async def serve(cfg: StreamConfig, waveforms: Optional[Waveforms] = None) -> StreamController:
    commands = CommandChannel()
    _install_shutdown(commands)

    sink = await open_sink(cfg.endpoint, cfg.device_id)
    receiver = None
    try:
        if cfg.control_endpoint:
            receiver, _ = await start_receiver(cfg.control_endpoint, commands, cfg.sensor_id)
        controller = StreamController(StreamState.from_config(cfg), cfg.destination_path, waveforms)
        await controller.run(sink, commands)
    finally:
        if receiver is not None:
            receiver.close()
        sink.close()
    return controller


@app.command()
def run(
    device_id: Optional[str] = typer.Option(None, help="Device identity reported with every sample"),
    endpoint: Optional[str] = typer.Option(None, help="Where samples go: udp://host:port, or - for stdout"),
    interface: Optional[str] = typer.Option(None, help="Interface name to send data to"),
    sensor_id: Optional[str] = typer.Option(None, help="Sensor id used in the sample and control paths"),
    math_function: Optional[str] = typer.Option(
        None, "--math-function", "-m", callback=_waveform_option, help=f"Waveform to stream: {WAVEFORM_CHOICES}"
    ),
    interval_btw_samples: Optional[int] = typer.Option(None, "--interval-btw-samples", "-i", help="Milliseconds between samples"),
    scale: Optional[float] = typer.Option(None, "--scale", "-s", help="Scale of the phase advance"),
    control_endpoint: Optional[str] = typer.Option(None, help="udp://host:port to listen on for control events"),
    config: Optional[str] = typer.Option(None, help="Path to JSON config (lower precedence than CLI and env)"),
    log_level: str = typer.Option("INFO", envvar="LOG_LEVEL", help="Logging level"),
) -> None:
    """Stream samples until interrupted.

    Settings come from options, then environment variables, then --config.
    """
    setup_logging(log_level)

    try:
        fragments = [
            cli_fragment(
                device_id=device_id,
                endpoint=endpoint,
                interface=interface,
                sensor_id=sensor_id,
                waveform=math_function,
                interval_ms=interval_btw_samples,
                scale=scale,
                control_endpoint=control_endpoint,
            ),
            env_fragment(),
        ]
        if config:
            fragments.append(file_fragment(config))
        fragments.append(DEFAULTS)
        cfg = resolve(fragments)
    except ConfigFileError as e:
        raise typer.BadParameter(str(e), param_hint="--config")
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)

    logger.debug(f"Parsed config: {', '.join(describe(cfg))}")

    try:
        asyncio.run(serve(cfg))
    except TransportError as e:
        typer.echo(f"Transport error: {e}", err=True)
        raise typer.Exit(code=1)
    except StreamTransportError as e:
        logger.error(f"{e}: {e.__cause__}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("interrupted")


@app.command()
def preview(
    math_function: str = typer.Option(
        WaveformKind.DEFAULT_HARMONIC.value, "--math-function", "-m", callback=_waveform_option, help=f"Waveform to sample: {WAVEFORM_CHOICES}"
    ),
    samples: int = typer.Option(10, "--samples", "-n", min=1, help="Number of samples"),
    scale: float = typer.Option(1.0, "--scale", "-s", help="Scale of the phase advance"),
    phase: float = typer.Option(0.0, help="Starting phase"),
    seed: int = typer.Option(42, help="Seed of the noise source"),
) -> None:
    """Print samples as CSV without any transport."""
    waveforms = Waveforms(seed=seed)
    try:
        state = StreamState(waveform=math_function, scale=scale, interval_ms=1, phase=phase)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--scale")

    print("index,phase,value")
    for i in range(samples):
        value = state.next_value(waveforms)
        print(f"{i},{state.phase:.6f},{value:.6f}")
        state.advance(waveforms)


@app.command()
def send(
    path: str = typer.Argument(..., help="Event path, e.g. /test/interval"),
    value: Optional[str] = typer.Argument(None, help="Payload, parsed as JSON when possible"),
    control_endpoint: str = typer.Option(DEFAULT_CONTROL_ENDPOINT, help="udp://host:port of a running device"),
) -> None:
    """Send one control event to a running device."""
    try:
        split_path(path)
        host, port = parse_udp_endpoint(control_endpoint)
    except (ValueError, TransportError) as e:
        raise typer.BadParameter(str(e))

    payload = None
    if value is not None:
        try:
            payload = json.loads(value)
        except json.JSONDecodeError:
            payload = value

    data = json.dumps({"path": path, "value": payload}).encode("utf-8")
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.sendto(data, (host, port))
    finally:
        sock.close()
    typer.echo(f"sent {path} {payload!r} to {control_endpoint}")


if __name__ == "__main__":
    app()
