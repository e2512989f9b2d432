"""Structured output for CLI and JSON modes."""

# ruff: noqa: T201 - this module is the output layer; print() is its sole mechanism for producing CLI output.

import json
import sys
from typing import NoReturn

import typer

from naslock.bridge import LockOutcome, UnlockOutcome
from naslock.config import VolumeConfig
from naslock.truenas import JobProgress


def format_progress(progress: JobProgress) -> str:
    """Render progress as "42%", "<description>", or "42% - <description>"."""
    parts: list[str] = []
    if progress.percent is not None:
        parts.append(f"{progress.percent:g}%")
    if progress.description:
        parts.append(progress.description)
    return " - ".join(parts)


class Output:
    """Handles all CLI output in JSON or human-readable format."""

    def __init__(self, *, json_mode: bool) -> None:
        """Initialize output handler.

        Args:
            json_mode: If True, output JSON envelopes; otherwise human-readable text.

        """
        self._json_mode = json_mode

    def _success(self, data: dict[str, object], message: str) -> None:
        """Print a success result in JSON or human-readable format."""
        if self._json_mode:
            print(json.dumps({"ok": True, "data": data}))
        else:
            print(message)

    def print_error_and_exit(self, code: str, message: str) -> NoReturn:
        """Print an error in JSON or human-readable format and exit with code 1.

        Raises:
            typer.Exit: Always, with code 1.

        """
        if self._json_mode:
            print(json.dumps({"ok": False, "error": code, "message": message}))
        else:
            print(f"Error: {message}", file=sys.stderr)
        raise typer.Exit(code=1)

    # --- Jobs ---

    def print_progress(self, progress: JobProgress) -> None:
        """Print a job progress line to stderr (human mode only)."""
        if not self._json_mode:
            print(f"progress: {format_progress(progress)}", file=sys.stderr)

    # --- Volumes ---

    def print_unlock_outcome(self, outcome: UnlockOutcome) -> None:
        """Print the result of an unlock."""
        result = outcome.result
        data: dict[str, object] = {
            "dataset": outcome.dataset,
            "job_id": result.job_id,
            "unlocked": result.unlocked,
            "message": result.message,
        }
        if outcome.job is not None:
            message = f"unlock complete (job id: {outcome.job.id})"
        elif result.unlocked:
            message = f"unlocked datasets: {', '.join(result.unlocked)}"
        elif result.message:
            message = result.message
        else:
            message = "unlock request accepted"
        self._success(data, message)

    def print_lock_outcome(self, outcome: LockOutcome) -> None:
        """Print the result of a lock."""
        result = outcome.result
        data: dict[str, object] = {
            "dataset": outcome.dataset,
            "job_id": result.job_id,
            "locked": result.locked,
            "message": result.message,
        }
        if outcome.job is not None:
            message = f"lock complete (job id: {outcome.job.id})"
        elif result.locked:
            message = f"dataset {outcome.dataset} locked"
        elif result.message:
            message = result.message
        else:
            message = "lock request accepted"
        self._success(data, message)

    def print_volumes(self, volumes: dict[str, VolumeConfig]) -> None:
        """Print configured volumes."""
        if self._json_mode:
            data = {name: {"nas": v.nas, "dataset": v.dataset} for name, v in volumes.items()}
            print(json.dumps({"ok": True, "data": {"volumes": data}}))
        else:
            for name, volume in sorted(volumes.items()):
                print(f"{name}\t{volume.nas}\t{volume.dataset}")
