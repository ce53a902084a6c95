"""
Tests for the CLI — option wiring, exit codes and output.

Builds are never run for real: the run tests patch ``run_builds``.
"""

import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from mpybuild import __version__
from mpybuild.main import EXIT_BUILD_FAILED, EXIT_CONFIG_ERROR, cli
from mpybuild.core.models.result import BuildResult, RunReport


@pytest.fixture(autouse=True)
def _restore_logging(monkeypatch, tmp_path: Path):
    """The CLI reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    monkeypatch.delenv("GITHUB_ACTIONS", raising=False)
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _invoke(runner: CliRunner, args: list[str], **kwargs):
    return runner.invoke(cli, args, obj={}, catch_exceptions=False, **kwargs)


# ── Group ────────────────────────────────────────────────────────────


class TestGroup:
    def test_help(self, runner: CliRunner):
        result = _invoke(runner, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "post", "check"):
            assert command in result.output

    def test_version(self, runner: CliRunner):
        result = _invoke(runner, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_run_help_lists_build_options(self, runner: CliRunner):
        result = _invoke(runner, ["run", "--help"])
        for option in ("--architecture", "--micropython-version", "--parallel-builds",
                       "--static-const-workaround-patterns", "--esp-idf-version"):
            assert option in result.output


# ── check ────────────────────────────────────────────────────────────


class TestCheck:
    def test_valid(self, runner: CliRunner, module_dir: Path):
        result = _invoke(
            runner,
            ["check", "--source-dir", str(module_dir), "--micropython-version", "v1.25.0"],
        )
        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output
        assert "x86, x64, armv6m, armv7m, armv7emsp, armv7emdp, xtensa, xtensawin, rv32imc" in result.output
        assert "Parallel builds: 4" in result.output

    def test_invalid(self, runner: CliRunner, module_dir: Path):
        result = _invoke(
            runner,
            ["check", "--source-dir", str(module_dir), "--micropython-version", "v1.24.1",
             "--parallel-builds", "12"],
        )
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "parallel-builds:" in result.output

    def test_json(self, runner: CliRunner, module_dir: Path):
        result = _invoke(
            runner,
            ["check", "--json", "--source-dir", str(module_dir),
             "--micropython-version", "v1.24.1", "--architecture", "x64"],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["architectures"] == ["x64"]
        assert data["micropython_versions"] == ["v1.24.1"]

    def test_json_invalid(self, runner: CliRunner, module_dir: Path):
        result = _invoke(
            runner, ["check", "--json", "--source-dir", str(module_dir), "--architecture", "z80"]
        )
        assert result.exit_code == EXIT_CONFIG_ERROR
        data = json.loads(result.output)
        assert data["valid"] is False
        assert data["errors"][0].startswith("architecture:")

    def test_actions_input_env_vars(self, runner: CliRunner, module_dir: Path):
        result = _invoke(
            runner,
            ["check", "--json"],
            env={
                "INPUT_SOURCE-DIR": str(module_dir),
                "INPUT_MICROPYTHON-VERSION": "v1.24.1",
                "INPUT_ARCHITECTURE": "armv7m",
            },
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["architectures"] == ["armv7m"]

    def test_config_file_option(self, runner: CliRunner, module_dir: Path, tmp_path: Path):
        cfg = tmp_path / "ci.yml"
        cfg.write_text("build:\n  micropython-version: v1.23.0\n  source-dir: module\n")
        result = _invoke(runner, ["-c", str(cfg), "check", "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["micropython_versions"] == ["v1.23.0"]


# ── run ──────────────────────────────────────────────────────────────


def _patch_builds(monkeypatch, results: list[BuildResult]) -> list:
    configs = []

    async def fake_run_builds(config, **kwargs):
        configs.append(config)
        return RunReport(
            results=results,
            output_dir=str(config.output_dir),
            architecture=config.architecture.value,
        )

    monkeypatch.setattr("mpybuild.core.use_cases.run.run_builds", fake_run_builds)
    return configs


class TestRun:
    def test_config_error(self, runner: CliRunner, module_dir: Path):
        result = _invoke(runner, ["run", "--source-dir", str(module_dir)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Validation error: micropython-version is required" in result.output

    def test_success(self, runner: CliRunner, module_dir: Path, monkeypatch):
        ok = BuildResult(
            architecture="x64",
            micropython_version="v1.24.1",
            mpy_file="/dist/simple-mpy1.24-x64.mpy",
            success=True,
        )
        configs = _patch_builds(monkeypatch, [ok])

        result = _invoke(
            runner,
            ["run", "--source-dir", str(module_dir), "--micropython-version", "v1.24.1",
             "--architecture", "x64", "--state-file", "state.json"],
        )

        assert result.exit_code == 0, result.output
        assert "x64@v1.24.1" in result.output
        assert "1 build(s) succeeded" in result.output
        assert configs[0].architectures == ("x64",)

    def test_build_failure(self, runner: CliRunner, module_dir: Path, monkeypatch):
        failed = BuildResult.failure("xtensa", "v1.24.1", "Toolchain setup failed: boom")
        _patch_builds(monkeypatch, [failed])

        result = _invoke(
            runner,
            ["run", "--source-dir", str(module_dir), "--micropython-version", "v1.24.1",
             "--architecture", "xtensa", "--state-file", "state.json"],
        )

        assert result.exit_code == EXIT_BUILD_FAILED
        assert "Toolchain setup failed: boom" in result.output
        assert "1 build(s) failed: xtensa@v1.24.1" in result.output

    def test_json_and_outputs(self, runner: CliRunner, module_dir: Path, monkeypatch, tmp_path: Path):
        ok = BuildResult(
            architecture="x86", micropython_version="v1.24.1", mpy_file="/d/a.mpy", success=True
        )
        _patch_builds(monkeypatch, [ok])
        gh_output = tmp_path / "gh_output"

        result = _invoke(
            runner,
            ["-q", "run", "--json", "--source-dir", str(module_dir), "--micropython-version", "v1.24.1",
             "--architecture", "x86", "--state-file", "state.json"],
            env={"GITHUB_OUTPUT": str(gh_output)},
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "ok"
        assert data["outputs"]["mpy-files"] == ["/d/a.mpy"]
        published = gh_output.read_text()
        assert 'mpy-files=["/d/a.mpy"]' in published
        assert "toolchain-cache-hit=false" in published

    def test_json_stays_clean_under_actions(self, runner: CliRunner, module_dir: Path, monkeypatch):
        failed = BuildResult.failure("x64", "v1.24.1", "make failed")
        _patch_builds(monkeypatch, [failed])

        result = _invoke(
            runner,
            ["run", "--json", "--source-dir", str(module_dir), "--micropython-version", "v1.24.1",
             "--architecture", "x64", "--state-file", "state.json"],
            env={"GITHUB_ACTIONS": "true"},
        )

        assert result.exit_code == EXIT_BUILD_FAILED
        assert json.loads(result.stdout)["status"] == "failed"
        assert "::error::1 build(s) failed: x64@v1.24.1" in result.stderr

    def test_state_cleared_at_start(self, runner: CliRunner, module_dir: Path, monkeypatch, tmp_path: Path):
        state_file = tmp_path / "state.json"
        state_file.write_text(json.dumps({"values": {"toolchain-cache-key-x64": "stale"}}))
        _patch_builds(monkeypatch, [])

        _invoke(
            runner,
            ["run", "--source-dir", str(module_dir), "--micropython-version", "v1.24.1",
             "--state-file", str(state_file)],
        )

        assert json.loads(state_file.read_text())["values"] == {}


# ── post ─────────────────────────────────────────────────────────────


class TestPost:
    def test_no_state(self, runner: CliRunner, tmp_path: Path):
        result = _invoke(
            runner,
            ["-q", "post", "--json", "--state-file", str(tmp_path / "none.json"),
             "--cache-dir", str(tmp_path / "cache")],
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["saved"] == 0

    def test_saves_recorded_cache(self, runner: CliRunner, tmp_path: Path):
        install = tmp_path / "tc" / "esp-open-sdk"
        install.mkdir(parents=True)
        (install / "marker").write_text("x")
        state_file = tmp_path / "state.json"
        state_file.write_text(json.dumps({"values": {
            "toolchain-cache-key-xtensa": "xtensa-key",
            "toolchain-cache-paths-xtensa": json.dumps([str(install)]),
            "toolchain-cache-hit-xtensa": "false",
        }}))

        result = _invoke(
            runner,
            ["-q", "post", "--json", "--state-file", str(state_file), "--cache-dir", str(tmp_path / "cache")],
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["keys"] == ["xtensa-key"]
        assert (tmp_path / "cache" / "manifest.json").is_file()

    def test_locations_from_config_file(self, runner: CliRunner, tmp_path: Path):
        (tmp_path / "mpybuild.yml").write_text(
            f"state_file: {tmp_path / 'from-yaml.json'}\ncache_dir: {tmp_path / 'yaml-cache'}\n"
        )
        result = _invoke(runner, ["-q", "post", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["error"] is None

    def test_broken_config_file_ignored(self, runner: CliRunner, tmp_path: Path):
        (tmp_path / "mpybuild.yml").write_text("state_file: [broken\n")
        result = _invoke(
            runner, ["post", "--state-file", str(tmp_path / "s.json"), "--cache-dir", str(tmp_path / "c")]
        )
        assert result.exit_code == 0
