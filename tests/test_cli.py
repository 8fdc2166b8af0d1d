import json

from typer.testing import CliRunner

from streamdevice.config import ENV_VARS
from streamdevice.stream_app import app

runner = CliRunner()
CLEAN_ENV = {var: None for var in ENV_VARS.values()}


def test_preview_prints_samples():
    result = runner.invoke(app, ["preview", "-m", "sin", "-n", "3", "--scale", "0"])
    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines[0] == "index,phase,value"
    assert lines[1:] == ["0,0.000000,0.000000", "1,0.000000,0.000000", "2,0.000000,0.000000"]


def test_preview_is_reproducible_with_seed():
    args = ["preview", "-m", "random", "-n", "5", "--seed", "9"]
    first = runner.invoke(app, args)
    second = runner.invoke(app, args)
    assert first.exit_code == 0
    assert first.output == second.output


def test_run_reports_every_missing_field():
    result = runner.invoke(app, ["run"], env=CLEAN_ENV)
    assert result.exit_code == 2
    assert "device_id" in result.output
    assert "endpoint" in result.output


def test_run_rejects_zero_interval():
    result = runner.invoke(app, ["run", "--device-id", "d", "--endpoint", "-", "-i", "0"], env=CLEAN_ENV)
    assert result.exit_code == 2
    assert "interval_ms" in result.output


def test_run_missing_config_file(tmp_path):
    result = runner.invoke(app, ["run", "--config", str(tmp_path / "nope.json")], env=CLEAN_ENV)
    assert result.exit_code == 2


def test_run_env_and_file_fill_in(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"endpoint": "tcp://unsupported:1"}))
    env = dict(CLEAN_ENV, STREAM_DEVICE_ID="dev-env")
    result = runner.invoke(app, ["run", "--config", str(p)], env=env)
    # configuration resolved, the transport then refuses the endpoint
    assert result.exit_code == 1
    assert "unsupported endpoint" in result.output


def test_send_rejects_bad_path():
    result = runner.invoke(app, ["send", "/toggle"])
    assert result.exit_code == 2


def test_math_function_accepts_member_names_like_env():
    by_name = runner.invoke(app, ["preview", "-m", "NOISY_SINE", "-n", "3", "--seed", "4"])
    by_value = runner.invoke(app, ["preview", "-m", "noise-sin", "-n", "3", "--seed", "4"])
    assert by_name.exit_code == 0, by_name.output
    assert by_name.output == by_value.output


def test_math_function_rejects_unknown_waveform():
    result = runner.invoke(app, ["run", "--device-id", "d", "--endpoint", "-", "-m", "triangle"], env=CLEAN_ENV)
    assert result.exit_code == 2
    assert "triangle" in result.output


def test_run_help_describes_the_command():
    result = runner.invoke(app, ["run", "--help"])
    assert result.exit_code == 0
    assert "Stream samples until interrupted" in result.output
