"""
mpybuild — CLI entrypoint.

Usage:
    mpybuild run --architecture all --micropython-version v1.24.1
    mpybuild post
    mpybuild check --micropython-version v1.25.0

Every build option can also come from mpybuild.yml or from a
GitHub-Actions-style ``INPUT_<NAME>`` environment variable.

Exit codes:
    0  every build succeeded
    1  at least one (architecture, version) build failed
    2  invalid inputs (nothing was built)
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from mpybuild import __version__
from mpybuild.core.observability.logging_config import setup_logging

EXIT_BUILD_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _envvars(name: str) -> list[str]:
    """``INPUT_MICROPYTHON-VERSION`` (as the Actions runner sets it) and
    the underscore spelling."""
    upper = name.upper()
    return [f"INPUT_{upper}", f"INPUT_{upper.replace('-', '_')}"]


# (option name, help) for every build input; values pass through as strings
# and are validated by the config loader.
_BUILD_OPTIONS: list[tuple[str, str]] = [
    ("architecture", "Target architecture or 'all' (default: all)."),
    ("micropython-version", "MicroPython version(s), comma-separated (e.g. v1.24.1)."),
    ("micropython-repo", "MicroPython git repository."),
    ("source-dir", "Directory containing the module's Makefile (default: .)."),
    ("output-name", "Expected base name of the built .mpy file."),
    ("make-target", "Make target to build."),
    ("make-args", "Extra arguments passed to make."),
    ("mpy-cross-args", "Extra mpy-cross flags (appended after -march)."),
    ("static-const-workaround", "Rewrite 'static const' to 'const' in build copies (true/false)."),
    ("static-const-workaround-patterns", "Comma-separated globs the workaround applies to."),
    ("cache-toolchains", "Cache toolchain installs (true/false, default: true)."),
    ("esp-idf-version", "ESP-IDF version for xtensawin (default: v5.0.6)."),
    ("esp-open-sdk-repo", "esp-open-sdk repository for xtensa."),
    ("esp-open-sdk-branch", "esp-open-sdk branch for xtensa."),
    ("parallel-builds", "Concurrent builds per version, 0-9 (0 = sequential, default: 4)."),
    ("toolchain-dir", "Where toolchains are installed."),
    ("micropython-dir", "Where MicroPython is checked out."),
    ("cache-dir", "Local blob cache directory."),
    ("state-file", "State file shared with the post step."),
]


def build_options(fn: Callable) -> Callable:
    for name, help_text in reversed(_BUILD_OPTIONS):
        fn = click.option(
            f"--{name}",
            name.replace("-", "_"),
            envvar=_envvars(name),
            default=None,
            help=help_text,
        )(fn)
    return fn


def _overrides(values: dict[str, Any]) -> dict[str, Any]:
    keys = {name.replace("-", "_") for name, _ in _BUILD_OPTIONS}
    return {k: v for k, v in values.items() if k in keys and v not in (None, "")}


@click.group()
@click.version_option(version=__version__, prog_name="mpybuild")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to mpybuild.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """mpybuild — cross-compile MicroPython native modules."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "WARNING"
    else:
        level = os.environ.get("MPYBUILD_LOG_LEVEL", "INFO")

    setup_logging(
        level=level,
        log_file=os.environ.get("MPYBUILD_LOG_FILE"),
        log_file_level=os.environ.get("MPYBUILD_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


@cli.command()
@build_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(ctx: click.Context, as_json: bool, **values: Any) -> None:
    """Set up toolchains and build for every architecture and version."""
    from mpybuild.core.observability.annotations import annotate
    from mpybuild.core.use_cases.run import run as run_use_case

    result = run_use_case(config_path=ctx.obj.get("config_path"), overrides=_overrides(values))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.report is not None and not ctx.obj.get("quiet"):
        report = result.report
        click.echo()
        for r in report.results:
            if r.success:
                click.secho(f"   ✓ {r.label}", fg="green", nl=False)
                click.echo(f"  → {r.mpy_file}")
            else:
                click.secho(f"   ✗ {r.label}", fg="red", nl=False)
                click.echo(f"  {r.error}")
        click.echo()

    if result.config_error:
        annotate("error", result.message)
        if not as_json:
            click.secho(f"❌ {result.message}", fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)

    if not result.ok:
        annotate("error", result.message)
        if not as_json:
            click.secho(f"❌ {result.message}", fg="red", bold=True, err=True)
        sys.exit(EXIT_BUILD_FAILED)

    if not as_json and not ctx.obj.get("quiet"):
        assert result.report is not None
        click.secho(f"✅ {len(result.report.results)} build(s) succeeded", fg="green", bold=True)


@cli.command()
@click.option(
    "--state-file",
    envvar=_envvars("state-file"),
    default=None,
    help="State file written by the run step.",
)
@click.option(
    "--cache-dir",
    envvar=_envvars("cache-dir"),
    default=None,
    help="Local blob cache directory.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def post(
    ctx: click.Context,
    state_file: str | None,
    cache_dir: str | None,
    as_json: bool,
) -> None:
    """Save toolchain caches recorded by the run step. Never fails."""
    from mpybuild.adapters.cache.local import LocalBlobCache
    from mpybuild.core import constants
    from mpybuild.core.persistence.state_file import StateStore
    from mpybuild.core.use_cases.post import run_post

    file_values = _post_locations(ctx.obj.get("config_path"))
    state_path = Path(state_file or file_values.get("state_file") or constants.DEFAULT_STATE_FILE)
    cache_path = Path(cache_dir or file_values.get("cache_dir") or constants.DEFAULT_CACHE_DIR)

    result = run_post(
        StateStore(state_path.expanduser()),
        LocalBlobCache(cache_path.expanduser()),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))


def _post_locations(config_path: Path | None) -> dict[str, Any]:
    """``state_file`` / ``cache_dir`` from mpybuild.yml, if there is one.

    The post step must not fail, so an unreadable file is ignored.
    """
    from mpybuild.core.config.loader import find_config_file, read_config_file
    from mpybuild.core.errors import ConfigurationError

    path = config_path or find_config_file()
    if path is None:
        return {}
    try:
        return read_config_file(path)
    except ConfigurationError:
        return {}


@cli.command()
@build_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool, **values: Any) -> None:
    """Validate inputs and show what would be built."""
    from mpybuild.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"), overrides=_overrides(values))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else EXIT_CONFIG_ERROR)

    if not result.valid:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")
        click.echo()
        sys.exit(EXIT_CONFIG_ERROR)

    config = result.config
    assert config is not None  # guaranteed when valid
    click.secho("✅ Configuration is valid", fg="green", bold=True)
    if result.config_path:
        click.echo(f"   Config: {result.config_path}")
    click.echo(f"   Source: {config.source_dir}")
    click.echo(f"   Architectures: {', '.join(a.value for a in config.architectures)}")
    click.echo(f"   MicroPython: {', '.join(config.micropython_versions)}")
    click.echo(
        "   Parallel builds: "
        + ("sequential" if config.parallel_builds == 0 else str(config.parallel_builds))
    )
    click.echo()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
