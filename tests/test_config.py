from pathlib import Path

import pytest

from binwatch.config import ConfigError, load_config


def _config_dir(tmp_path: Path, **files: str) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    for name, body in files.items():
        (config_dir / f"{name}.yaml").write_text(body.strip() + "\n", encoding="utf-8")
    return config_dir


def test_defaults_from_empty_directory(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("BINWATCH_IOT_API_KEY", raising=False)
    config = load_config(_config_dir(tmp_path))

    assert config.thresholds.overfill_level == 90.0
    assert config.thresholds.offline_after_hours == 2.0
    assert config.thresholds.low_confidence == 60.0
    assert config.commands.max_retries == 3
    assert config.commands.pending_batch_size == 10
    assert config.sweep.auto_start is False
    assert config.iot.api_key is None
    assert config.database.path.name == "binwatch.db"


def test_values_read_from_yaml(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("BINWATCH_IOT_API_KEY", raising=False)
    config_dir = _config_dir(
        tmp_path,
        thresholds="overfill_level: 85\nlow_confidence: 50",
        server=f"""
database:
  path: {str((tmp_path / "x.db").resolve())}
commands:
  max_retries: 5
iot:
  api_key: secret-1
""",
    )

    config = load_config(config_dir)

    assert config.thresholds.overfill_level == 85.0
    assert config.thresholds.low_confidence == 50.0
    assert config.commands.max_retries == 5
    assert config.iot.api_key == "secret-1"
    assert config.database.path == (tmp_path / "x.db").resolve()


def test_env_api_key_overrides_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BINWATCH_IOT_API_KEY", "from-env")
    config_dir = _config_dir(tmp_path, server="iot:\n  api_key: from-file")

    assert load_config(config_dir).iot.api_key == "from-env"


def test_config_dir_from_environment(monkeypatch, tmp_path: Path) -> None:
    config_dir = _config_dir(tmp_path, thresholds="overfill_level: 70")
    monkeypatch.setenv("BINWATCH_CONFIG_DIR", str(config_dir))

    assert load_config().thresholds.overfill_level == 70.0


@pytest.mark.parametrize(
    ("name", "body"),
    [
        ("thresholds", "overfill_level: 120"),
        ("thresholds", "offline_after_hours: 0"),
        ("thresholds", "low_confidence: lots"),
        ("server", "commands:\n  max_retries: 0"),
        ("server", "sweep:\n  interval_seconds: -5"),
        ("server", "sweep:\n  interval_seconds: soon"),
        ("server", "sweep:\n  auto_start: \"false\""),
        ("server", "sweep:\n  auto_start: 1"),
        ("server", "commands: [1, 2]"),
        ("server", "- just\n- a list"),
    ],
)
def test_invalid_values_rejected(tmp_path: Path, name: str, body: str) -> None:
    config_dir = _config_dir(tmp_path, **{name: body})

    with pytest.raises(ConfigError):
        load_config(config_dir)


def test_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope")


def test_sweep_section_parsed(tmp_path: Path) -> None:
    config_dir = _config_dir(tmp_path, server="sweep:\n  interval_seconds: 120\n  auto_start: true")

    sweep = load_config(config_dir).sweep

    assert sweep.interval_seconds == 120
    assert sweep.auto_start is True
