"""
Console status output.

Every component takes a Console so that scans, remediation and reporting can
run silently under test or be redirected to another stream.
"""

import sys
from typing import Optional, TextIO


class Console:
    """Print THINKING/RESULT/FINDING style status lines."""

    def __init__(self, stream: Optional[TextIO] = None, quiet: bool = False):
        self.stream = stream
        self.quiet = quiet

    def _emit(self, line: str):
        if self.quiet:
            return
        print(line, file=self.stream or sys.stdout)

    def thinking(self, message: str):
        """Print a thinking/status message."""
        self._emit(f"THINKING: {message}")

    def result(self, cmd: str, exit_code: Optional[int], elapsed: float):
        """Print command result summary."""
        self._emit(f"RESULT: cmd='{cmd}' exit={exit_code} time={elapsed:.1f}s")

    def finding(self, severity: str, title: str, status: str):
        """Print a compliance finding."""
        self._emit(f"FINDING: [{severity}] {title} — {status.upper()}")

    def warning(self, message: str):
        self._emit(f"WARNING: {message}")

    def error(self, message: str):
        self._emit(f"ERROR: {message}")

    def banner(self, message: str):
        self._emit("\n" + "=" * 70)
        self._emit(message)
        self._emit("=" * 70)


default_console = Console()
