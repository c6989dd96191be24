"""Tests for the plugin's option handling and registration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

import testrail_plugin
from config import RunMode, Settings
from testrail_plugin import TestRailPlugin, options_from_config, resolve_tests_root


class FakePluginManager:
    def __init__(self) -> None:
        self.registered: dict[str, Any] = {}

    def register(self, plugin: Any, name: str) -> None:
        self.registered[name] = plugin


class FakeConfig:
    """The parts of ``pytest.Config`` the module-level hooks touch."""

    def __init__(self, rootpath: Path = Path("/work"), **options: Any) -> None:
        self.rootpath = rootpath
        self._options = options
        self.ini_lines: list[tuple[str, str]] = []
        self.pluginmanager = FakePluginManager()

    def getoption(self, name: str) -> Any:
        return self._options.get(name)

    def addinivalue_line(self, name: str, line: str) -> None:
        self.ini_lines.append((name, line))


@pytest.fixture(autouse=True)
def empty_settings(monkeypatch):
    for name in ("TESTRAIL_DOMAIN", "TESTRAIL_USERNAME", "TESTRAIL_API_TOKEN"):
        monkeypatch.setattr(Settings, name, "")
    monkeypatch.setattr(Settings, "TESTRAIL_PROJECT_ID", 0)
    monkeypatch.setattr(Settings, "TESTRAIL_MODE", "do_nothing")


def connected(**extra: Any) -> FakeConfig:
    return FakeConfig(
        testrail_mode="publish_ran_tests",
        testrail_domain="acme.testrail.io",
        testrail_username="ci@acme.io",
        testrail_token="token",
        testrail_project_id=3,
        **extra,
    )


def test_command_line_overrides_settings(monkeypatch):
    monkeypatch.setattr(Settings, "TESTRAIL_DOMAIN", "env.testrail.io")

    opts = options_from_config(connected(testrail_root="e2e", testrail_case_prefix=""))

    assert opts.domain == "acme.testrail.io"
    assert opts.project_id == 3
    assert opts.tests_root_dir == str(Path("/work/e2e").resolve())
    assert opts.case_prefix == ""
    assert opts.mode is RunMode.PUBLISH_RAN_TESTS


def test_do_nothing_only_registers_markers():
    config = FakeConfig()

    testrail_plugin.pytest_configure(config)

    assert [line for _, line in config.ini_lines] == testrail_plugin.MARKERS
    assert config.pluginmanager.registered == {}


def test_missing_connection_is_a_usage_error():
    config = FakeConfig(testrail_mode="create_cases", testrail_domain="acme.testrail.io")

    with pytest.raises(pytest.UsageError, match="TESTRAIL_USERNAME"):
        testrail_plugin.pytest_configure(config)


def test_save_needs_no_connection(tmp_path):
    config = FakeConfig(testrail_mode="publish_ran_tests", testrail_save=str(tmp_path / "r.json"))

    testrail_plugin.pytest_configure(config)

    plugin = config.pluginmanager.registered["testrail-reporter"]
    assert isinstance(plugin, TestRailPlugin)


def test_connected_configuration_registers_the_plugin():
    config = connected()

    testrail_plugin.pytest_configure(config)

    plugin = config.pluginmanager.registered["testrail-reporter"]
    assert plugin.reporter.enabled
    assert plugin.reporter.options.domain == "acme.testrail.io"


class TestTestsRoot:
    def test_relative_root_is_anchored_at_rootdir(self, tmp_path):
        assert resolve_tests_root(tmp_path, "tests/e2e") == str((tmp_path / "tests/e2e").resolve())

    def test_empty_root_means_rootdir(self, tmp_path):
        assert resolve_tests_root(tmp_path, "") == str(tmp_path.resolve())
        assert resolve_tests_root(tmp_path, None) == str(tmp_path.resolve())

    def test_absolute_root_is_kept(self, tmp_path):
        root = tmp_path / "e2e"
        assert resolve_tests_root(Path("/elsewhere"), str(root)) == str(root.resolve())

    def test_settings_root_is_resolved_too(self, tmp_path, monkeypatch):
        monkeypatch.setattr(Settings, "TESTRAIL_TESTS_ROOT_DIR", "tests/e2e")

        opts = options_from_config(FakeConfig(rootpath=tmp_path))

        assert opts.tests_root_dir == str((tmp_path / "tests/e2e").resolve())
