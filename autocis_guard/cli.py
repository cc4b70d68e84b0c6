#!/usr/bin/env python3
"""
AutoCIS Guard: automated CIS benchmark compliance with AI remediation.

Scans the host against the platform's benchmark checks, asks an advisory
model for fixes to failed checks, and applies them behind a destructive
command denylist.
"""

import argparse
import os
import sys
import threading
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .agent import OllamaClient
from .compliance import BenchmarkLoader, ComplianceScanner
from .console import Console, default_console
from .executor import CommandRunner, SafeExecutor
from .remediation import RemediationAdvisor
from .report import ReportGenerator
from .system_info import check_privileges, get_system_info


class AutoCISGuard:
    """
    Owns one assessment session: the result list, and the components that
    scan, advise, remediate and report.
    """

    def __init__(
        self,
        platform_name: Optional[str] = None,
        benchmarks_dir: Optional[str] = None,
        output_dir: Optional[str] = None,
        timeout_ms: int = config.DEFAULT_TIMEOUT_MS,
        client=None,
        console: Optional[Console] = None,
        runner: Optional[CommandRunner] = None,
        system_info_provider=get_system_info,
    ):
        self.platform_name = platform_name or sys.platform
        self.output_dir = output_dir or config.REPORTS_DIR
        self.console = console or default_console
        self.system_info_provider = system_info_provider

        self.runner = runner or CommandRunner(console=self.console, timeout_ms=timeout_ms)
        self.loader = BenchmarkLoader(benchmarks_dir, console=self.console)
        self.scanner = ComplianceScanner(self.runner, self.loader, console=self.console)
        self.client = client or OllamaClient()
        self.advisor = RemediationAdvisor(self.client, console=self.console)
        self.executor = SafeExecutor(
            self.runner,
            console=self.console,
            backup_dir=os.path.join(self.output_dir, config.BACKUPS_SUBDIR),
            platform_name=self.platform_name,
        )
        self.report_gen = ReportGenerator(config.GUARD_VERSION, console=self.console)

        self.cancel_event = threading.Event()
        self.results: List[Dict[str, Any]] = []
        self._system_info: Optional[Dict[str, Any]] = None

    @property
    def system_info(self) -> Dict[str, Any]:
        if self._system_info is None:
            self._system_info = self.system_info_provider()
        return self._system_info

    def scan(self) -> List[Dict[str, Any]]:
        """Run a full compliance scan and keep the results."""
        self.results = self.scanner.run_compliance_check(self.platform_name, self.cancel_event)
        return self.results

    def failed_checks(self) -> List[Dict[str, Any]]:
        return [r for r in self.results if r.get("status") == "fail" and not r.get("remediated")]

    def get_remediation(self, check: Dict[str, Any]) -> Dict[str, Any]:
        return self.advisor.get_remediation(check, self.system_info, self.platform_name)

    def apply_remediation(self, check: Dict[str, Any],
                          suggestion: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Apply a suggestion's fix commands for one check.

        Returns the (possibly) updated check and the executor outcome. The
        check is marked remediated only when every command succeeded and at
        least one actually ran; fallback suggestions are never applied.
        """
        if suggestion.get("fallback"):
            outcome = {
                "success": False,
                "results": [],
                "errors": [{"command": None, "error": "Fallback guidance is not executable"}],
                "backup_id": None,
                "message": "Fallback guidance requires manual remediation",
                "cancelled": False,
            }
            return check, outcome

        outcome = self.executor.apply(suggestion.get("fix_commands", []), check.get("id"), self.cancel_event)

        if outcome["success"] and outcome["results"] and not outcome["cancelled"]:
            updated = dict(check)
            updated.update({"remediated": True, "status": "pass", "ai_suggestion": suggestion})
            self.replace_result(updated)
            return updated, outcome
        return check, outcome

    def replace_result(self, updated: Dict[str, Any]):
        """Swap in a whole new CheckResult for the one with the same id."""
        for i, result in enumerate(self.results):
            if result.get("id") == updated.get("id"):
                self.results[i] = updated
                return

    def generate_report(self, checks: Optional[List[Dict[str, Any]]] = None,
                        system_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.report_gen.generate_report(
            self.results if checks is None else checks,
            self.system_info if system_info is None else system_info,
        )

    def save_report(self, report: Dict[str, Any]) -> str:
        return self.report_gen.save_report(report, self.output_dir)

    def remediate_failed(self, apply: bool = False, confirm=None) -> List[Dict[str, Any]]:
        """
        Request suggestions for every failed check and optionally apply them.

        ``confirm`` is called with (check, suggestion) before each
        application and must return True to proceed.
        """
        outcomes = []
        for check in self.failed_checks():
            if self.cancel_event.is_set():
                self.console.warning("Remediation cancelled")
                break

            suggestion = self.get_remediation(check)
            entry = {"check_id": check.get("id"), "suggestion": suggestion, "outcome": None}

            if apply and not suggestion.get("fallback"):
                if confirm is None or confirm(check, suggestion):
                    _, entry["outcome"] = self.apply_remediation(check, suggestion)
                    self.console.thinking(f"{check.get('id')}: {entry['outcome']['message']}")
            outcomes.append(entry)
        return outcomes


# ============================================================================
# CLI INTERFACE
# ============================================================================

def require_confirmation(check: Dict[str, Any], suggestion: Dict[str, Any]) -> bool:
    """Require explicit YES confirmation."""
    commands = "\n".join(f"  {c}" for c in suggestion.get("fix_commands", []))
    print(f"\nThis will execute the following commands for {check.get('id')} ({check.get('title')}):\n{commands}")
    response = input("Type YES to proceed: ").strip()
    return response == "YES"


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AutoCIS Guard: CIS benchmark compliance with AI remediation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan this host and write a report
  %(prog)s --scan

  # Scan and request AI remediation for failed checks
  %(prog)s --scan --remediate

  # Scan, then apply the suggested fixes (asks for confirmation per check)
  %(prog)s --scan --apply

  # Serve the JSON API
  %(prog)s --serve --port 5000
        """
    )

    action_group = parser.add_argument_group('Actions')
    action_group.add_argument('--scan', action='store_true',
                              help='Run the compliance scan and write a report')
    action_group.add_argument('--remediate', action='store_true',
                              help='Request AI remediation for failed checks (implies --scan)')
    action_group.add_argument('--apply', action='store_true',
                              help='Apply AI remediation to failed checks (implies --remediate)')
    action_group.add_argument('--serve', action='store_true',
                              help='Start the HTTP API')

    parser.add_argument('--yes', '--non-interactive', action='store_true',
                        help='Skip confirmations (use with caution)')
    parser.add_argument('--platform', default=None,
                        help='Benchmark platform (default: this host, e.g. linux or win32)')
    parser.add_argument('--benchmarks-dir', default=None,
                        help='Directory holding cis_linux.json / cis_windows.json')
    parser.add_argument('--output-dir', default=config.REPORTS_DIR,
                        help=f'Output directory for reports and backups (default: {config.REPORTS_DIR})')
    parser.add_argument('--timeout', type=positive_int, default=config.DEFAULT_TIMEOUT_MS // 1000,
                        help=f'Per-command timeout in seconds (default: {config.DEFAULT_TIMEOUT_MS // 1000})')
    parser.add_argument('--ollama-url', default=config.OLLAMA_URL,
                        help=f'Advisory service URL (default: {config.OLLAMA_URL})')
    parser.add_argument('--model', default=config.ADVISOR_MODEL,
                        help=f'Advisory model (default: {config.ADVISOR_MODEL})')
    parser.add_argument('--port', type=int, default=5000,
                        help='Port for --serve (default: 5000)')
    parser.add_argument('--quiet', action='store_true',
                        help='Suppress status output')
    return parser


def run_session(guard: AutoCISGuard, args) -> int:
    """Scan, optionally remediate, and always finish with a report."""
    if not check_privileges():
        guard.console.warning("Not running with administrator/root privileges; some checks may error")

    try:
        guard.scan()
        if args.remediate or args.apply:
            confirm = None if args.yes else require_confirmation
            guard.remediate_failed(apply=args.apply, confirm=confirm)
    except KeyboardInterrupt:
        guard.cancel_event.set()
        guard.console.warning("Interrupted by user, writing partial report")

    report = guard.generate_report()
    report_path = guard.save_report(report)
    guard.report_gen.print_summary(report, report_path)
    return 0


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not (args.scan or args.remediate or args.apply or args.serve):
        parser.print_help()
        return 1

    console = Console(quiet=args.quiet)
    guard = AutoCISGuard(
        platform_name=args.platform,
        benchmarks_dir=args.benchmarks_dir,
        output_dir=args.output_dir,
        timeout_ms=args.timeout * 1000,
        client=OllamaClient(base_url=args.ollama_url, model=args.model),
        console=console,
    )

    console.banner(f"{config.GUARD_VERSION}\nPlatform: {guard.platform_name}\nOutput Directory: {guard.output_dir}")

    if args.serve:
        from .web import create_app

        console.thinking(f"Serving API at http://localhost:{args.port}")
        create_app(guard).run(debug=False, port=args.port)
        return 0

    return run_session(guard, args)


if __name__ == "__main__":
    sys.exit(main())
