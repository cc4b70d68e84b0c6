"""
Benchmark loading, output comparison and the compliance scan loop.
"""

import json
import os
import re
import sys
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import config
from .console import Console, default_console
from .errors import ComparisonError, ExecutionError, LoadError
from .executor import CommandRunner, is_windows


COMPARISON_TYPES = (
    "exact",
    "contains",
    "not_contains",
    "regex",
    "empty",
    "not_empty",
    "greater_than",
    "equals",
    "default",
)

SEVERITIES = ("high", "medium", "low")


def parse_severity(severity: Optional[str]) -> str:
    """Normalise a severity label to high/medium/low."""
    normalized = (severity or "medium").strip().lower()
    if normalized in ("critical", "high"):
        return "high"
    if normalized in ("medium", "moderate"):
        return "medium"
    return "low"


def _to_float(value: str) -> Optional[float]:
    # Leading numeric prefix, so "5 days" reads as 5.
    match = re.match(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?", value)
    if not match:
        return None
    return float(match.group(0))


def compare_output(actual: Optional[str], expected: Optional[str],
                   comparison_type: Optional[str] = "contains") -> str:
    """
    Decide pass/fail/error for a check.

    Both operands are trimmed and lower-cased first. Unknown comparison types
    pass on either a contains or an exact match. An invalid regex, or both
    operands being empty, yields 'error' instead of raising.
    """
    if not actual and not expected:
        return "error"

    actual_clean = str(actual or "").strip().lower()
    expected_clean = str(expected or "").strip().lower()

    if comparison_type in ("exact", "equals"):
        return "pass" if actual_clean == expected_clean else "fail"

    if comparison_type == "contains":
        return "pass" if expected_clean in actual_clean else "fail"

    if comparison_type == "not_contains":
        return "pass" if expected_clean not in actual_clean else "fail"

    if comparison_type == "regex":
        try:
            pattern = re.compile(expected_clean, re.IGNORECASE)
        except re.error:
            return "error"
        return "pass" if pattern.search(actual_clean) else "fail"

    if comparison_type == "empty":
        return "pass" if actual_clean == "" else "fail"

    if comparison_type == "not_empty":
        return "pass" if actual_clean != "" else "fail"

    if comparison_type == "greater_than":
        actual_num = _to_float(actual_clean)
        expected_num = _to_float(expected_clean)
        if actual_num is None or expected_num is None:
            return "fail"
        return "pass" if actual_num > expected_num else "fail"

    if expected_clean in actual_clean or actual_clean == expected_clean:
        return "pass"
    return "fail"


# ============================================================================
# BENCHMARK LOADER
# ============================================================================

class BenchmarkLoader:
    """Load benchmark checks for a platform family from JSON files."""

    def __init__(self, data_dir: Optional[str] = None, console: Optional[Console] = None):
        self.data_dir = str(data_dir or config.DATA_DIR)
        self.console = console or default_console

    def benchmark_path(self, platform_name: Optional[str] = None) -> str:
        filename = config.WINDOWS_BENCHMARKS if is_windows(platform_name) else config.LINUX_BENCHMARKS
        return os.path.join(self.data_dir, filename)

    def load(self, platform_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Return the ordered benchmark checks for the platform.

        Never raises: a missing or malformed source yields an empty list.
        """
        path = self.benchmark_path(platform_name)
        self.console.thinking(f"Loading benchmarks from: {path}")

        if not os.path.exists(path):
            self.console.error(f"{LoadError.__name__}: benchmark file not found: {path}")
            return []

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self.console.error(f"{LoadError.__name__}: could not read {path}: {e}")
            return []

        if not isinstance(data, list):
            self.console.error(f"{LoadError.__name__}: {path} must contain a list of checks")
            return []

        checks = []
        for entry in data:
            if not isinstance(entry, dict) or entry.get("id") in (None, ""):
                self.console.warning(f"Skipping malformed benchmark entry: {entry!r:.80}")
                continue
            command = entry.get("check_command")
            if not isinstance(command, str) or not command.strip():
                self.console.warning(f"Skipping benchmark {entry['id']}: check_command must be a non-empty string")
                continue
            check = dict(entry)
            check["id"] = str(entry["id"])
            check["severity"] = parse_severity(check.get("severity"))
            check.setdefault("title", check["id"])
            check.setdefault("description", "")
            check.setdefault("category", "General")
            check["expected"] = "" if check.get("expected") is None else str(check["expected"])
            check.setdefault("comparison_type", "contains")
            checks.append(check)

        self.console.thinking(f"Loaded {len(checks)} benchmark checks")
        return checks


# ============================================================================
# COMPLIANCE SCANNER
# ============================================================================

def load_error_result() -> Dict[str, Any]:
    """Single synthetic result reported when no benchmarks could be loaded."""
    return {
        "id": "ERROR",
        "title": "No benchmarks loaded",
        "description": "The benchmark definition source is missing or malformed.",
        "category": "General",
        "severity": "high",
        "check_command": "",
        "expected": "N/A",
        "comparison_type": "default",
        "status": "error",
        "actual_output": "Failed to load CIS benchmark data",
        "remediated": False,
        "ai_suggestion": None,
        "timestamp": datetime.now().isoformat(),
    }


class ComplianceScanner:
    """Run every benchmark check against the host, one at a time."""

    def __init__(self, runner: CommandRunner, loader: BenchmarkLoader,
                 console: Optional[Console] = None):
        self.runner = runner
        self.loader = loader
        self.console = console or default_console

    def run_check(self, check: Dict[str, Any], platform_name: Optional[str] = None) -> Dict[str, Any]:
        """Execute one check and return its CheckResult."""
        self.console.thinking(f"Checking {check['id']}: {check.get('title', '')}")

        try:
            output = self.runner.execute(check["check_command"], platform_name)
            status = compare_output(output, check.get("expected"), check.get("comparison_type"))
            if status == "error":
                self.console.warning(
                    f"{ComparisonError.__name__}: check {check['id']} could not be evaluated"
                )
            actual_output = output or config.EMPTY_OUTPUT
        except ExecutionError as e:
            self.console.error(f"Error executing check {check['id']}: {e}")
            status = "error"
            actual_output = f"Error: {e}"

        self.console.finding(check.get("severity", "medium"), check.get("title", check["id"]), status)

        result = dict(check)
        result.update({
            "status": status,
            "actual_output": actual_output,
            "remediated": False,
            "ai_suggestion": None,
            "timestamp": datetime.now().isoformat(),
        })
        return result

    def run_compliance_check(self, platform_name: Optional[str] = None,
                             cancel_event: Optional[threading.Event] = None) -> List[Dict[str, Any]]:
        """
        Scan the host against the platform's benchmarks.

        A cancel event set between checks stops the scan and returns the
        results gathered so far.
        """
        platform_name = platform_name or sys.platform
        self.console.banner(f"Starting compliance check for: {platform_name}")

        checks = self.loader.load(platform_name)
        if not checks:
            self.console.error("No benchmarks loaded. Cannot run compliance check.")
            return [load_error_result()]

        results = []
        for check in checks:
            if cancel_event is not None and cancel_event.is_set():
                self.console.warning(f"Scan cancelled after {len(results)} of {len(checks)} checks")
                break
            results.append(self.run_check(check, platform_name))

        passed = sum(1 for r in results if r["status"] == "pass")
        failed = sum(1 for r in results if r["status"] == "fail")
        errored = sum(1 for r in results if r["status"] == "error")
        self.console.banner(
            f"Compliance check complete! Total: {len(results)} | Pass: {passed} | Fail: {failed} | Error: {errored}"
        )
        return results
