"""Command line entry point for model-sync.

Commands:
- ``model-sync sync``: bring the local artifact up to date and compile it
- ``model-sync check``: report whether an update is available
- ``model-sync digest``: print the digest of a local file
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import click
import rich_click as rclick
import yaml
from pydantic import ValidationError as PydanticValidationError

from model_sync import __version__
from model_sync.config import TOKEN_ENV_VAR, CachePolicy, SyncConfig, load_config_data
from model_sync.digest import compute_digest, format_digest
from model_sync.errors import AuthError, ModelSyncError
from model_sync.observability import configure_logging
from model_sync.output import error, info, progress, set_no_color, success, warning

rclick.rich_click.TEXT_MARKUP = "markdown"
rclick.rich_click.SHOW_ARGUMENTS = True

# Exit codes following sysexits.h convention
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # Bad configuration, rejected token
EXIT_SYSTEM_ERROR = 2  # Network, filesystem or compile failure


class CLIError(click.ClickException):
    """CLI-specific exception with exit code support."""

    def __init__(self, message: str, exit_code: int = EXIT_USER_ERROR) -> None:
        super().__init__(message)
        self.exit_code = exit_code

    def show(self, file: object = None) -> None:
        """Display the error message using Rich formatting."""
        error(self.format_message())


def format_pydantic_error(err: PydanticValidationError) -> str:
    """Format a pydantic validation error as one line per field."""
    lines = ["Invalid configuration:"]
    for e in err.errors():
        loc = ".".join(str(x) for x in e["loc"])
        lines.append(f"  - {loc}: {e['msg']}")
    return "\n".join(lines)


def _config_options(func: Any) -> Any:
    """Attach the options shared by commands that talk to the endpoints."""
    options = [
        click.option(
            "-c",
            "--config",
            "config_file",
            type=click.Path(dir_okay=False, path_type=Path),
            default=None,
            help="YAML file with the sync configuration.",
        ),
        click.option(
            "--endpoint",
            default=None,
            help="Base endpoint; digest at `<endpoint>/latest`, download at `<endpoint>/download`.",
        ),
        click.option("--digest-endpoint", default=None, help="Explicit digest endpoint URL."),
        click.option("--download-endpoint", default=None, help="Explicit download endpoint URL."),
        click.option(
            "--token",
            envvar=TOKEN_ENV_VAR,
            default=None,
            help=f"Bearer token [env: {TOKEN_ENV_VAR}].",
        ),
        click.option(
            "--artifact-dir",
            type=click.Path(file_okay=False, path_type=Path),
            default=None,
            help="Directory for the artifact and its compiled cache.",
        ),
        click.option("--name", "artifact_name", default=None, help="Artifact file name."),
        click.option(
            "--cache-policy",
            type=click.Choice([p.value for p in CachePolicy]),
            default=None,
            help="Compiled cache invalidation policy.",
        ),
        click.option("--timeout", type=float, default=None, help="HTTP timeout in seconds."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_config(
    *,
    config_file: Path | None,
    endpoint: str | None,
    digest_endpoint: str | None,
    download_endpoint: str | None,
    token: str | None,
    artifact_dir: Path | None,
    artifact_name: str | None,
    cache_policy: str | None,
    timeout: float | None,
) -> SyncConfig:
    """Merge a YAML config file with command line overrides.

    Raises:
        CLIError: If the configuration is incomplete or invalid.
    """
    data: dict[str, Any] = {}
    if config_file is not None:
        try:
            data = load_config_data(config_file)
        except FileNotFoundError:
            raise CLIError(f"File not found: {config_file}", exit_code=EXIT_SYSTEM_ERROR) from None
        except (yaml.YAMLError, ValueError) as e:
            raise CLIError(f"Cannot load {config_file}: {e}") from None

    if endpoint is not None:
        base = endpoint.rstrip("/")
        data["digest_endpoint"] = f"{base}/latest"
        data["download_endpoint"] = f"{base}/download"
    overrides = {
        "digest_endpoint": digest_endpoint,
        "download_endpoint": download_endpoint,
        "token": token,
        "artifact_dir": artifact_dir,
        "artifact_name": artifact_name,
        "cache_policy": cache_policy,
        "timeout_seconds": timeout,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return SyncConfig.model_validate(data)
    except PydanticValidationError as e:
        raise CLIError(format_pydantic_error(e)) from None


def _raise_sync_error(exc: ModelSyncError) -> None:
    if isinstance(exc, AuthError):
        raise CLIError(f"{exc}\nRefresh the token and try again.") from exc
    raise CLIError(str(exc), exit_code=EXIT_SYSTEM_ERROR) from exc


@click.group(cls=rclick.RichGroup)
@click.version_option(version=__version__, prog_name="model-sync")
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable colored output.",
    is_eager=True,
    expose_value=False,
    callback=lambda ctx, param, value: set_no_color(value) if value else None,
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Minimum level of structured log output.",
)
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON.")
def cli(log_level: str, json_logs: bool) -> None:
    """Keep a local model file in step with its remote source.

    - `model-sync sync` - download if stale, then compile
    - `model-sync check` - report whether an update is available
    - `model-sync digest FILE` - print the digest of a local file
    """
    configure_logging(log_level=log_level, json_format=json_logs)


@cli.command()
@_config_options
def sync(**kwargs: Any) -> None:
    """Download the artifact if stale, then compile and load it.

    Examples:

        model-sync sync --endpoint https://models.example.com/v1/classifier

        model-sync sync -c model-sync.yaml --cache-policy recompile-only-if-cache-absent
    """
    from model_sync.synchronizer import ArtifactSynchronizer

    config = build_config(**kwargs)
    synchronizer = ArtifactSynchronizer(config, on_status=progress)
    try:
        result = asyncio.run(synchronizer.synchronize())
    except ModelSyncError as exc:
        _raise_sync_error(exc)
        return

    if result.downloaded:
        success(f"Artifact {result.outcome.value}: {config.artifact_path}")
    else:
        success(f"Artifact up to date: {config.artifact_path}")
    info(f"Compiled artifact: {result.compiled_path}")


@cli.command()
@_config_options
def check(**kwargs: Any) -> None:
    """Report whether a newer artifact is available, without downloading."""
    from model_sync.synchronizer import ArtifactSynchronizer

    config = build_config(**kwargs)
    synchronizer = ArtifactSynchronizer(config)
    try:
        stale = asyncio.run(synchronizer.check_for_update())
    except ModelSyncError as exc:
        _raise_sync_error(exc)
        return

    if stale:
        warning(f"Update available for {config.artifact_path}")
    else:
        success(f"Artifact up to date: {config.artifact_path}")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--prefixed", is_flag=True, default=False, help="Prefix the digest with `md5:`.")
def digest(file_path: Path, prefixed: bool) -> None:
    """Print the content digest of FILE_PATH."""
    try:
        value = compute_digest(file_path)
    except OSError as exc:
        raise CLIError(f"Cannot read {file_path}: {exc}", exit_code=EXIT_SYSTEM_ERROR) from exc
    click.echo(format_digest(value) if prefixed else value)


if __name__ == "__main__":
    cli()
