"""
Command execution for compliance checks and remediation.

CommandRunner runs a single command in a non-interactive, non-profile shell
chosen from the target platform. SafeExecutor applies an ordered list of fix
commands behind the destructive-pattern denylist, writing a backup record
first.
"""

import json
import os
import re
import shutil
import signal
import socket
import subprocess
import sys
import threading
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import config
from .console import Console, default_console
from .errors import BackupError, ExecutionError, SafetyError
from .safety import find_dangerous_pattern, is_power_state_command


def is_windows(platform_name: Optional[str]) -> bool:
    """True for the Windows platform family ('win32', 'windows', 'nt')."""
    name = (platform_name or sys.platform).lower()
    return name.startswith("win") or name in ("nt", "cygwin")


def shell_type_for(platform_name: Optional[str]) -> str:
    return "PowerShell" if is_windows(platform_name) else "Bash"


def truncate_output(output: str, max_size: int = config.MAX_BUFFER_BYTES) -> str:
    """Truncate output if too large."""
    if len(output) > max_size:
        return output[:max_size] + f"\n... (truncated, {len(output)} bytes total)"
    return output


class CommandRunner:
    """Execute a shell command with timeout and output bounds."""

    def __init__(self, console: Optional[Console] = None,
                 timeout_ms: int = config.DEFAULT_TIMEOUT_MS,
                 max_buffer_bytes: int = config.MAX_BUFFER_BYTES):
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        self.console = console or default_console
        self.timeout_ms = timeout_ms
        self.max_buffer_bytes = max_buffer_bytes
        self.command_history = []

    def build_argv(self, command: str, platform_name: Optional[str] = None) -> List[str]:
        """Shell invocation for the platform family."""
        if is_windows(platform_name):
            return [
                config.WINDOWS_SHELL,
                "-NoProfile",
                "-NonInteractive",
                "-Command",
                f"& {{{command}}}",
            ]
        bash = config.POSIX_SHELL if os.path.exists(config.POSIX_SHELL) else shutil.which("bash")
        if bash:
            return [bash, "--noprofile", "--norc", "-c", command]
        return [config.POSIX_FALLBACK_SHELL, "-c", command]

    def run(
        self,
        command: str,
        platform_name: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        max_buffer_bytes: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run a command and pick its effective output.

        On a non-zero exit, stderr becomes the output when present (many
        introspection commands report on stderr), then stdout. Raises
        ExecutionError on timeout, spawn failure, or when a failing command
        printed nothing at all.

        Returns:
            Dict with stdout, stderr, exit_code and the trimmed output.
        """
        if timeout_ms is None or timeout_ms <= 0:
            timeout_ms = self.timeout_ms
        if max_buffer_bytes is None or max_buffer_bytes <= 0:
            max_buffer_bytes = self.max_buffer_bytes
        timeout = timeout_ms / 1000.0
        argv = self.build_argv(command, platform_name)

        entry = {
            "id": str(uuid.uuid4()),
            "command": command,
            "shell": argv[0],
            "start_ts": datetime.now().isoformat(),
            "exit_code": None,
            "timeout": False,
        }
        self.command_history.append(entry)
        start_time = time.time()

        self.console.thinking(f"Running `{command}` with {os.path.basename(argv[0])} (timeout={timeout:g}s)")

        popen_kwargs = {}
        if os.name == "nt":
            popen_kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)
        else:
            # Own process group so a timeout kills pipelines, not just the shell.
            popen_kwargs["start_new_session"] = True

        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                **popen_kwargs,
            )
        except (OSError, TypeError, ValueError) as e:
            self._finish(entry, start_time)
            raise ExecutionError(f"Failed to start command: {e}") from e

        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill(process)
            process.communicate()
            entry["timeout"] = True
            self._finish(entry, start_time)
            raise ExecutionError(f"Command timed out after {timeout:g} seconds")

        exit_code = process.returncode
        entry["exit_code"] = exit_code
        elapsed = self._finish(entry, start_time)
        self.console.result(command, exit_code, elapsed)

        stdout = truncate_output(stdout or "", max_buffer_bytes)
        stderr = truncate_output(stderr or "", max_buffer_bytes)

        if exit_code == 0:
            output = stdout.strip()
        elif stderr.strip():
            output = stderr.strip()
        elif stdout.strip():
            output = stdout.strip()
        else:
            raise ExecutionError(f"Command failed with exit code {exit_code} and produced no output")

        return {
            "stdout": stdout,
            "stderr": stderr,
            "exit_code": exit_code,
            "output": output,
        }

    def execute(self, command: str, platform_name: Optional[str] = None, **kwargs) -> str:
        """Run a command and return only its effective, trimmed output."""
        return self.run(command, platform_name, **kwargs)["output"]

    @staticmethod
    def _kill(process: subprocess.Popen):
        if os.name != "nt":
            try:
                os.killpg(process.pid, signal.SIGKILL)
                return
            except OSError:
                pass
        process.kill()

    @staticmethod
    def _finish(entry: Dict[str, Any], start_time: float) -> float:
        elapsed = time.time() - start_time
        entry["end_ts"] = datetime.now().isoformat()
        entry["elapsed_seconds"] = elapsed
        return elapsed


# ============================================================================
# SAFE REMEDIATION EXECUTOR
# ============================================================================

def _safe_filename(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)) or "check"


class SafeExecutor:
    """Apply fix commands for one check behind the denylist."""

    def __init__(self, runner: CommandRunner, console: Optional[Console] = None,
                 backup_dir: Optional[str] = None, platform_name: Optional[str] = None):
        self.runner = runner
        self.console = console or default_console
        self.backup_dir = backup_dir or os.path.join(config.REPORTS_DIR, config.BACKUPS_SUBDIR)
        self.platform_name = platform_name or sys.platform

    def create_backup(self, check_id: str) -> str:
        """
        Write a backup record before any fix command runs.

        A failure to write is not fatal: the sentinel id is returned and the
        remediation continues.
        """
        backup_id = f"backup-{_safe_filename(check_id)}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        record = {
            "backup_id": backup_id,
            "check_id": check_id,
            "timestamp": datetime.now().isoformat(),
            "platform": self.platform_name,
            "hostname": socket.gethostname(),
        }
        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            backup_file = os.path.join(self.backup_dir, f"{backup_id}.json")
            with open(backup_file, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
        except OSError as e:
            self.console.error(f"{BackupError.__name__}: backup creation failed: {e}")
            return config.BACKUP_FAILED

        self.console.thinking(f"Backup saved: {backup_file}")
        return backup_id

    def apply(self, fix_commands: List[str], check_id: str,
              cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        """
        Apply fix commands in order.

        Comments and blank entries are skipped. Denylisted commands are
        recorded as errors without running. A failed reboot/shutdown command
        stops the batch.

        Returns:
            Dict with success, results, errors, backup_id, message and cancelled.
        """
        results = []
        errors = []

        if not isinstance(fix_commands, list) or not fix_commands:
            return {
                "success": False,
                "results": results,
                "errors": [{"command": None, "error": "No fix commands provided"}],
                "backup_id": None,
                "message": "No fix commands provided",
                "cancelled": False,
            }

        if cancel_event is not None and cancel_event.is_set():
            self.console.warning("Remediation cancelled before any command ran")
            return {
                "success": False,
                "results": results,
                "errors": errors,
                "backup_id": None,
                "message": "Remediation cancelled before any command ran",
                "cancelled": True,
            }

        self.console.banner(f"Applying fix for check: {check_id} ({len(fix_commands)} commands)")

        backup_id = self.create_backup(check_id)
        cancelled = False
        total = len(fix_commands)

        for i, command in enumerate(fix_commands, 1):
            if cancel_event is not None and cancel_event.is_set():
                self.console.warning("Remediation cancelled, remaining commands not run")
                cancelled = True
                break

            if not isinstance(command, str) or not command.strip() or command.strip().startswith("#"):
                self.console.thinking(f"[{i}/{total}] Skipping: {command}")
                continue

            match = find_dangerous_pattern(command)
            if match:
                _, description = match
                message = f"{SafetyError.__name__}: command blocked ({description})"
                self.console.warning(f"[{i}/{total}] {message}: {command}")
                errors.append({"command": command, "error": message, "blocked": True})
                continue

            try:
                self.console.thinking(f"[{i}/{total}] Executing fix command: {command}")
                output = self.runner.execute(command, self.platform_name)
                results.append({
                    "command": command,
                    "success": True,
                    "output": output or config.NO_OUTPUT_SUCCESS,
                })
            except ExecutionError as e:
                self.console.error(f"[{i}/{total}] Command failed: {e}")
                errors.append({"command": command, "error": str(e)})

                if is_power_state_command(command):
                    self.console.error("Power-state command failed, stopping remediation")
                    break

        # Cancelled batches never count as success.
        success = len(errors) == 0 and not cancelled
        if cancelled:
            message = f"Remediation cancelled after {len(results) + len(errors)} of {total} commands"
        elif success:
            message = f"All {len(results)} fix commands executed successfully"
        else:
            message = f"{len(errors)} command(s) failed out of {len(results) + len(errors)}"

        self.console.thinking(
            f"Fix application complete. Success: {success} | Executed: {len(results)} | Errors: {len(errors)}"
        )

        return {
            "success": success,
            "results": results,
            "errors": errors,
            "backup_id": backup_id,
            "message": message,
            "cancelled": cancelled,
        }
