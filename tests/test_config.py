from pathlib import Path

import pytest

from config import AppConfig, ConfigError


def test_config_resolves_paths(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("paths:\n  logs: \"logs\"\n", encoding="utf-8")

    config = AppConfig.load(config_path)
    logs_path = config.resolve_path("paths", "logs")

    assert logs_path == config_path.parent / "logs"
    assert config.get("missing", default=123) == 123


def test_config_reads_nested_upload_settings(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "\n".join(
            [
                "upload:",
                "  chunk_size_bytes: 524288",
                "  strict_verification: true",
            ]
        ),
        encoding="utf-8",
    )

    config = AppConfig.load(config_path)

    assert config.get("upload", "chunk_size_bytes") == 524288
    assert config.get("upload", "strict_verification") is True
    assert config.get("upload", "chunk_size_bytes", "nested", default="x") == "x"


def test_config_env_path_must_exist(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BACKUP_UPLOADER_CONFIG", str(tmp_path / "absent.yaml"))

    with pytest.raises(FileNotFoundError):
        AppConfig.load()


def test_config_defaults_without_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BACKUP_UPLOADER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)

    config = AppConfig.load()

    assert config.raw == {}
    assert config.resolve_path("paths", "cache", default="data/cache") == tmp_path / "data" / "cache"


def test_typed_accessors(tmp_path: Path) -> None:
    config = AppConfig(
        root_dir=tmp_path,
        raw={"upload": {"chunk_size_bytes": "524288", "strict_verification": "yes", "ratio": "x"}},
    )

    assert config.get_int("upload", "chunk_size_bytes", default=0) == 524288
    assert config.get_bool("upload", "strict_verification", default=False) is True
    assert config.get_float("upload", "stall_warning_seconds", default=300.0) == 300.0
    with pytest.raises(ConfigError):
        config.get_float("upload", "ratio", default=1.0)
    with pytest.raises(ConfigError):
        config.get_bool("upload", "ratio", default=False)


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        AppConfig.load(config_path)
