"""Console output for the model-sync CLI.

Each command reports through these helpers:

- ``progress`` for the status stream of a running sync
  ("checking for update...", "downloading latest artifact...")
- ``success`` for the final state ("Artifact updated: /data/model.mlmodel")
- ``warning`` when ``check`` finds a newer artifact
- ``error`` for failures raised as CLIError

Colors are dropped when NO_COLOR is set or ``--no-color`` is passed.
"""

from __future__ import annotations

import os
from typing import Any

from rich.console import Console

from model_sync.observability import SyncStatus

_force_no_color = os.environ.get("NO_COLOR") is not None

# Statuses that close a run are shown like a result, not a step
_FINAL_STATUSES = frozenset({SyncStatus.UP_TO_DATE, SyncStatus.DONE})


def create_console(no_color: bool = False) -> Console:
    """Create the console used for all CLI output.

    Args:
        no_color: Disable colors. NO_COLOR in the environment has the same effect.

    Returns:
        Rich Console writing to stdout.
    """
    plain = no_color or _force_no_color
    return Console(force_terminal=False if plain else None, no_color=plain, highlight=False)


console = create_console()


def progress(status: SyncStatus) -> None:
    """Print one step of a running synchronization.

    Example:
        >>> progress(SyncStatus.DOWNLOADING)
        → downloading latest artifact...
    """
    style = "green" if status in _FINAL_STATUSES else "cyan"
    console.print(f"[{style}]→[/{style}] {status.message}")


def success(message: str, **kwargs: Any) -> None:
    """Print a final result.

    Example:
        >>> success("Artifact up to date: /data/model.mlmodel")
        ✓ Artifact up to date: /data/model.mlmodel
    """
    console.print(f"[green]✓[/green] {message}", **kwargs)


def error(message: str, **kwargs: Any) -> None:
    """Print a failure, e.g. a rejected token or an unreachable endpoint."""
    console.print(f"[red]✗[/red] {message}", **kwargs)


def warning(message: str, **kwargs: Any) -> None:
    """Print a notice that needs attention, e.g. an available update."""
    console.print(f"[yellow]⚠[/yellow] {message}", **kwargs)


def info(message: str, **kwargs: Any) -> None:
    """Print a detail line such as the compiled artifact location."""
    console.print(f"  {message}", **kwargs)


def set_no_color(no_color: bool) -> None:
    """Replace the module console, switching colors off or back on."""
    global console
    console = create_console(no_color=no_color)
