import json

import pytest

from streamdevice.config import (
    DEFAULTS,
    ConfigFileError,
    ConfigFragment,
    InvalidFieldsError,
    MissingFieldsError,
    REQUIRED_FIELDS,
    cli_fragment,
    env_fragment,
    file_fragment,
    merge,
    resolve,
)
from streamdevice.waveform import WaveformKind


def test_merge_precedence_cli_env_file():
    cli = ConfigFragment(interval_ms=500, source="cli")
    env = ConfigFragment(interval_ms=1000, scale=2.0, source="env")
    file = ConfigFragment(interval_ms=2000, scale=3.0, endpoint="x", source="file")
    merged = merge([cli, env, file])
    assert merged.interval_ms == 500
    assert merged.scale == 2.0
    assert merged.endpoint == "x"


def test_merge_does_not_touch_inputs():
    cli = ConfigFragment(scale=1.5, source="cli")
    file = ConfigFragment(scale=9.0, device_id="dev", source="file")
    merge([cli, file])
    assert cli.device_id is None
    assert file.scale == 9.0


def test_empty_strings_count_as_absent():
    merged = merge([ConfigFragment(endpoint=""), ConfigFragment(endpoint="udp://h:1")])
    assert merged.endpoint == "udp://h:1"


def test_missing_fields_are_all_reported():
    with pytest.raises(MissingFieldsError) as exc:
        resolve([ConfigFragment(endpoint="x", source="file")])
    missing = set(exc.value.fields)
    assert {"device_id", "waveform", "interval_ms", "scale"} <= missing
    assert "endpoint" not in missing
    assert set(REQUIRED_FIELDS) - {"endpoint"} == missing
    for name in missing:
        assert name in str(exc.value)


def test_resolve_with_defaults():
    cfg = resolve([ConfigFragment(device_id="dev-1", endpoint="-"), DEFAULTS])
    assert cfg.device_id == "dev-1"
    assert cfg.waveform is WaveformKind.DEFAULT_HARMONIC
    assert cfg.interval_ms == 1000
    assert cfg.scale == 1.0
    assert cfg.control_endpoint is None
    assert cfg.destination_path == "org.astarte-platform.genericsensors.Values/test/value"


def test_resolver_does_not_invent_identity():
    with pytest.raises(MissingFieldsError) as exc:
        resolve([DEFAULTS])
    assert exc.value.fields == ("device_id", "endpoint")


def test_zero_interval_rejected_after_merge():
    with pytest.raises(InvalidFieldsError) as exc:
        resolve([ConfigFragment(device_id="d", endpoint="-", interval_ms=0), DEFAULTS])
    assert "interval_ms" in exc.value.problems


def test_interval_above_u64_rejected():
    with pytest.raises(InvalidFieldsError) as exc:
        resolve([ConfigFragment(device_id="d", endpoint="-", interval_ms=2**64), DEFAULTS])
    assert "interval_ms" in exc.value.problems


def test_all_invalid_fields_reported_together():
    with pytest.raises(InvalidFieldsError) as exc:
        resolve([ConfigFragment(device_id="d", endpoint="-", interval_ms=-5, scale=float("inf")), DEFAULTS])
    assert set(exc.value.problems) == {"interval_ms", "scale"}


def test_env_fragment_parses_typed_values():
    env = {
        "STREAM_DEVICE_ID": "dev-env",
        "MATH_FUNCTION": "saw",
        "INTERVAL_BTW_SAMPLES": "250",
        "SCALE": "3",
        "STREAM_ENDPOINT": "",
    }
    frag = env_fragment(env)
    assert frag.device_id == "dev-env"
    assert frag.waveform is WaveformKind.SAWTOOTH
    assert frag.interval_ms == 250
    assert frag.scale == 3.0
    assert frag.endpoint is None
    assert frag.source == "env"


def test_env_fragment_names_bad_variable():
    with pytest.raises(InvalidFieldsError) as exc:
        env_fragment({"INTERVAL_BTW_SAMPLES": "fast", "MATH_FUNCTION": "triangle"})
    assert set(exc.value.problems) == {"INTERVAL_BTW_SAMPLES", "MATH_FUNCTION"}


def test_file_fragment_flat_with_aliases(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"math_function": "rect", "interval_btw_samples": 750, "scale": 0.5, "endpoint": "x"}))
    frag = file_fragment(str(p))
    assert frag.waveform is WaveformKind.RECTANGLE
    assert frag.interval_ms == 750
    assert frag.scale == 0.5
    assert frag.endpoint == "x"


def test_file_fragment_stream_section(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"stream": {"device_id": "from-file", "sensor_id": "s1"}}))
    frag = file_fragment(str(p))
    assert frag.device_id == "from-file"
    assert frag.sensor_id == "s1"


def test_file_fragment_errors(tmp_path):
    with pytest.raises(ConfigFileError):
        file_fragment(str(tmp_path / "missing.json"))

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigFileError):
        file_fragment(str(bad))

    wrong_type = tmp_path / "wrong.json"
    wrong_type.write_text(json.dumps({"interval_ms": True}))
    with pytest.raises(InvalidFieldsError):
        file_fragment(str(wrong_type))


def test_cli_fragment_skips_unset_options():
    frag = cli_fragment(device_id=None, endpoint="-", waveform=WaveformKind.SINE, interval_ms=None, scale=None)
    assert frag.present() == {"endpoint": "-", "waveform": WaveformKind.SINE}


def test_full_precedence_chain(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"device_id": "file-dev", "endpoint": "udp://127.0.0.1:9", "scale": 4.0, "interval_ms": 2000}))
    cfg = resolve([
        cli_fragment(interval_ms=500),
        env_fragment({"SCALE": "2.0"}),
        file_fragment(str(p)),
        DEFAULTS,
    ])
    assert cfg.interval_ms == 500
    assert cfg.scale == 2.0
    assert cfg.device_id == "file-dev"
    assert cfg.endpoint == "udp://127.0.0.1:9"
    assert cfg.waveform is WaveformKind.DEFAULT_HARMONIC
