"""Tests for airthings2mqtt._cli — command-line interface.

Test Techniques Used:
    - Specification-based Testing: CLI flag parsing and defaults
    - State-based Testing: Verifying settings propagation
    - Error Condition Testing: Invalid flag values, config errors
    - Behavioural Testing: Exit codes and output text
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from airthings2mqtt._app import Bridge
from airthings2mqtt._cli import (
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    EXIT_RUNTIME_ERROR,
    build_cli,
)
from airthings2mqtt._settings import Settings

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def bridge() -> Bridge:
    return Bridge(name="testbridge", version="1.0.0", description="Test bridge")


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _capture(store: dict[str, Any]):  # noqa: ANN202
    async def capture(*, settings: Settings | None = None, **_kwargs: object) -> None:
        store["settings"] = settings

    return capture


# ---------------------------------------------------------------------------
# Informational flags
# ---------------------------------------------------------------------------


class TestInformationalFlags:
    def test_version(self, bridge: Bridge, runner: CliRunner) -> None:
        result = runner.invoke(build_cli(bridge), ["--version"])

        assert result.exit_code == EXIT_OK
        assert "testbridge v1.0.0" in result.output

    def test_help_lists_options(self, bridge: Bridge, runner: CliRunner) -> None:
        result = runner.invoke(build_cli(bridge), ["--help"])

        assert result.exit_code == EXIT_OK
        assert "Test bridge" in result.output
        for option in ("--version", "--log-level", "--log-format", "--env-file", "--debug"):
            assert option in result.output


# ---------------------------------------------------------------------------
# Settings overrides
# ---------------------------------------------------------------------------


class TestSettingsOverrides:
    """Technique: State-based Testing — what run_async receives."""

    def test_env_file_forwarded(self, bridge: Bridge, runner: CliRunner) -> None:
        settings_cls = MagicMock(wraps=Settings)
        bridge._settings_class = settings_cls  # noqa: SLF001

        with patch.object(bridge, "run_async", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(build_cli(bridge), ["--env-file", "custom.env"])

        assert result.exit_code == EXIT_OK
        settings_cls.assert_called_once_with(_env_file="custom.env")
        mock_run.assert_awaited_once()

    def test_default_env_file(self, bridge: Bridge, runner: CliRunner) -> None:
        settings_cls = MagicMock(wraps=Settings)
        bridge._settings_class = settings_cls  # noqa: SLF001

        with patch.object(bridge, "run_async", new_callable=AsyncMock):
            runner.invoke(build_cli(bridge), [])

        settings_cls.assert_called_once_with(_env_file=".env")

    def test_log_level_and_format(self, bridge: Bridge, runner: CliRunner) -> None:
        captured: dict[str, Any] = {}

        with patch.object(bridge, "run_async", side_effect=_capture(captured)):
            result = runner.invoke(
                build_cli(bridge), ["--log-level", "debug", "--log-format", "TEXT"]
            )

        assert result.exit_code == EXIT_OK
        assert captured["settings"].logging.level == "DEBUG"
        assert captured["settings"].logging.format == "text"

    def test_debug_flag_sets_debug_mode(self, bridge: Bridge, runner: CliRunner) -> None:
        captured: dict[str, Any] = {}

        with patch.object(bridge, "run_async", side_effect=_capture(captured)):
            runner.invoke(build_cli(bridge), ["--debug"])

        assert captured["settings"].debug_mode is True

    def test_debug_mode_default_off(
        self, bridge: Bridge, runner: CliRunner, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("AIRTHINGS2MQTT_DEBUG_MODE", raising=False)
        captured: dict[str, Any] = {}

        with patch.object(bridge, "run_async", side_effect=_capture(captured)):
            runner.invoke(build_cli(bridge), ["--env-file", "does-not-exist.env"])

        assert captured["settings"].debug_mode is False

    @pytest.mark.parametrize(
        "args",
        [["--log-level", "TRACE"], ["--log-format", "yaml"]],
    )
    def test_invalid_values_rejected(
        self, bridge: Bridge, runner: CliRunner, args: list[str]
    ) -> None:
        with patch.object(bridge, "run_async", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(build_cli(bridge), args)

        assert result.exit_code != EXIT_OK
        mock_run.assert_not_awaited()


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class TestExitCodes:
    """Technique: Behavioural Testing."""

    def test_constants(self) -> None:
        assert (EXIT_OK, EXIT_CONFIG_ERROR, EXIT_RUNTIME_ERROR) == (0, 1, 3)

    def test_clean_run(self, bridge: Bridge, runner: CliRunner) -> None:
        with patch.object(bridge, "run_async", new_callable=AsyncMock):
            result = runner.invoke(build_cli(bridge), [])

        assert result.exit_code == EXIT_OK

    def test_config_error(self, runner: CliRunner) -> None:
        class BadSettings(Settings):
            required_field: str

        bridge = Bridge(name="badbridge", version="0.0.1", settings_class=BadSettings)

        result = runner.invoke(build_cli(bridge), ["--env-file", "does-not-exist.env"])

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_runtime_error(self, bridge: Bridge, runner: CliRunner) -> None:
        async def boom(**_kwargs: object) -> None:
            raise RuntimeError("kaboom")

        with patch.object(bridge, "run_async", side_effect=boom):
            result = runner.invoke(build_cli(bridge), [])

        assert result.exit_code == EXIT_RUNTIME_ERROR
