"""Tests for resolving the session target from the external text file."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from vrpose_telemetry import config_resolver
from vrpose_telemetry.config import load_default_config
from vrpose_telemetry.config_resolver import (
    ConfigResolver,
    default_search_paths,
    parse_config_line,
    parse_config_text,
    parse_interval,
)
from vrpose_telemetry.errors import ConfigParseError
from vrpose_telemetry.types import SessionConfig

DEFAULT = SessionConfig("127.0.0.1", 17200, 0.033)


def _resolve_text(tmp_path: Path, text: str) -> SessionConfig:
    path = tmp_path / "network_config.txt"
    path.write_text(text, encoding="utf-8")
    return ConfigResolver(load_default_config(), search_paths=[path]).resolve()


class TestParseConfigLine:
    """Tests for single-line interpretation."""

    @pytest.mark.parametrize("line", ["", "   ", "# comment", "  # indented comment"])
    def test_skipped_lines(self, line: str) -> None:
        assert parse_config_line(1, line) is None

    def test_bare_ip(self) -> None:
        assert parse_config_line(1, " 192.168.0.20 ") == ("target_bare", "192.168.0.20")

    @pytest.mark.parametrize("key", ["target_ip", "TargetIP", "targetip", "TARGET_IP"])
    def test_target_keys_case_insensitive(self, key: str) -> None:
        assert parse_config_line(1, f"{key}=10.0.0.9") == ("target_kv", "10.0.0.9")

    def test_port_and_interval_keys(self) -> None:
        assert parse_config_line(1, "SendPort = 18000") == ("send_port", 18000)
        assert parse_config_line(1, "send_interval=0.05") == ("send_interval", 0.05)

    @pytest.mark.parametrize(
        "line",
        [
            "send_port=99999",
            "send_port=0",
            "send_port=abc",
            "send_interval=0",
            "send_interval=-1",
            "send_interval=nan",
            "target_ip=999.1.1.1",
            "hello world",
            "colour=blue",
        ],
    )
    def test_invalid_lines_raise(self, line: str) -> None:
        with pytest.raises(ConfigParseError):
            parse_config_line(3, line)


class TestParseInterval:
    """Tests for interval suffixes."""

    def test_seconds(self) -> None:
        assert parse_interval("0.033") == pytest.approx(0.033)
        assert parse_interval("0.5s") == pytest.approx(0.5)

    def test_milliseconds(self) -> None:
        assert parse_interval("33ms") == pytest.approx(0.033)


class TestParseConfigText:
    """Tests for whole-file precedence rules."""

    def test_first_bare_ip_wins(self) -> None:
        parsed = parse_config_text("10.0.0.1\n10.0.0.2\n")
        assert parsed.target_address == "10.0.0.1"

    def test_key_value_before_bare_ip(self) -> None:
        parsed = parse_config_text("target_ip=10.0.0.9\n10.0.0.1\n")
        assert parsed.target_address == "10.0.0.9"

    def test_key_value_after_bare_ip(self) -> None:
        parsed = parse_config_text("10.0.0.1\ntarget_ip=10.0.0.9\n")
        assert parsed.target_address == "10.0.0.9"

    def test_last_valid_port_wins(self) -> None:
        parsed = parse_config_text("send_port=18000\nsend_port=19000\nsend_port=99999\n")
        assert parsed.send_port == 19000
        assert parsed.skipped_lines == 1

    def test_invalid_bare_line_does_not_block_later_ip(self) -> None:
        parsed = parse_config_text("300.1.1.1\n10.0.0.3\n")
        assert parsed.target_address == "10.0.0.3"


class TestConfigResolver:
    """Tests for ConfigResolver.resolve."""

    def test_key_value_overrides_bare_ip(self, tmp_path: Path) -> None:
        config = _resolve_text(tmp_path, "target_ip=10.0.0.9\n192.168.1.50\n")
        assert config.target_address == "10.0.0.9"

    def test_bare_ip_above_key_value(self, tmp_path: Path) -> None:
        config = _resolve_text(tmp_path, "192.168.1.50\ntarget_ip=10.0.0.9\n")
        assert config.target_address == "10.0.0.9"

    def test_malformed_port_keeps_default(self, tmp_path: Path) -> None:
        config = _resolve_text(tmp_path, "send_port=99999\nsend_interval=0.05\n")
        assert config.send_port == DEFAULT.send_port
        assert config.send_interval == pytest.approx(0.05)
        assert config.target_address == DEFAULT.target_address

    def test_partial_override(self, tmp_path: Path) -> None:
        config = _resolve_text(tmp_path, "# receiver\n\nsend_port=18500\n")
        assert config.target_address == "127.0.0.1"
        assert config.send_port == 18500
        assert config.send_interval == pytest.approx(0.033)

    def test_missing_file_writes_template(self, tmp_path: Path) -> None:
        primary = tmp_path / "primary" / "network_config.txt"
        secondary = tmp_path / "network_config.txt"
        resolver = ConfigResolver(load_default_config(), search_paths=[primary, secondary])

        assert resolver.resolve().send_port == 17200
        assert primary.is_file()
        text = primary.read_text(encoding="utf-8")
        assert text.startswith("#")
        assert "127.0.0.1" in text
        # The template itself resolves to the defaults
        assert resolver.resolve().target_address == "127.0.0.1"
        assert resolver.last_source == primary

    def test_secondary_path_used_when_primary_missing(self, tmp_path: Path) -> None:
        primary = tmp_path / "a" / "network_config.txt"
        secondary = tmp_path / "b" / "network_config.txt"
        secondary.parent.mkdir()
        secondary.write_text("10.0.0.7\n")

        resolver = ConfigResolver(load_default_config(), search_paths=[primary, secondary])
        assert resolver.resolve().target_address == "10.0.0.7"
        assert not primary.exists()

    def test_template_write_failure_is_not_fatal(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        resolver = ConfigResolver(
            load_default_config(), search_paths=[blocker / "network_config.txt"]
        )
        assert resolver.resolve().target_address == "127.0.0.1"

    def test_unreadable_file_treated_as_absent(self, tmp_path: Path) -> None:
        path = tmp_path / "network_config.txt"
        path.write_bytes(b"\xff\xfe\xfa target_ip=10.0.0.9")
        resolver = ConfigResolver(load_default_config(), search_paths=[path])
        assert resolver.resolve().target_address == "127.0.0.1"

    def test_external_config_disabled(self, tmp_path: Path) -> None:
        path = tmp_path / "network_config.txt"
        path.write_text("10.0.0.9\n")
        defaults = replace(load_default_config(), use_external_config=False)

        assert ConfigResolver(defaults, search_paths=[path]).resolve().target_address == "127.0.0.1"


class TestSearchPaths:
    """Tests for platform-dependent lookup order."""

    def test_desktop_prefers_app_root(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.delenv("ANDROID_ROOT", raising=False)
        monkeypatch.delenv("ANDROID_DATA", raising=False)
        monkeypatch.setattr(config_resolver.sys, "platform", "linux")
        monkeypatch.setenv(config_resolver.DATA_DIR_ENV, str(tmp_path / "data"))
        monkeypatch.chdir(tmp_path)

        paths = default_search_paths("network_config.txt")
        assert paths == [
            Path.cwd() / "network_config.txt",
            tmp_path / "data" / "network_config.txt",
        ]

    def test_constrained_platform_prefers_data_dir(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv("ANDROID_ROOT", "/system")
        monkeypatch.setenv(config_resolver.DATA_DIR_ENV, str(tmp_path / "data"))
        monkeypatch.chdir(tmp_path)

        paths = default_search_paths("network_config.txt")
        assert paths[0] == tmp_path / "data" / "network_config.txt"
        assert paths[1] == Path.cwd() / "network_config.txt"
