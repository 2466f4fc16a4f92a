"""Running external commands and collecting their combined output."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence


class ExecutableNotFoundError(Exception):
    """The requested executable could not be found."""

    def __init__(self, command: str) -> None:
        super().__init__(f"executable file not found: {command}")
        self.command = command


class ExitError(Exception):
    """A command ran but finished with a non-zero exit status."""

    def __init__(self, exit_status: int, output: str = "") -> None:
        super().__init__(f"exit status {exit_status}")
        self.exit_status = exit_status
        self.output = output


class Executor:
    """Runs commands with stdout and stderr merged into one stream."""

    def run(self, command: str, args: Sequence[str] = ()) -> str:
        """Run ``command`` with ``args`` and return its combined output.

        Raises ExecutableNotFoundError when the command does not exist and
        ExitError when it exits with a non-zero status.
        """
        try:
            completed = subprocess.run(
                [command, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ExecutableNotFoundError(command) from exc
        output = completed.stdout.decode("utf-8", errors="replace")
        if completed.returncode != 0:
            raise ExitError(completed.returncode, output)
        return output