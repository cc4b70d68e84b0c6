"""
Compliance report aggregation.

Everything except save_report and print_summary is a pure function of the
check results.
"""

import json
import math
import os
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import config
from .console import Console, default_console


def compliance_score(checks: List[Dict[str, Any]]) -> int:
    """Percentage of passed checks, rounded half up; 0 for no checks."""
    if not checks:
        return 0
    passed = sum(1 for c in checks if c.get("status") == "pass")
    return int(math.floor(100.0 * passed / len(checks) + 0.5))


def status_label(score: int) -> str:
    if score >= 90:
        return "EXCELLENT"
    if score >= 75:
        return "GOOD"
    if score >= 60:
        return "NEEDS IMPROVEMENT"
    return "CRITICAL"


def format_check(check: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": check.get("id"),
        "title": check.get("title"),
        "severity": check.get("severity"),
        "status": check.get("status"),
        "description": check.get("description") or "N/A",
        "check_command": check.get("check_command"),
        "expected_output": check.get("expected"),
        "actual_output": check.get("actual_output"),
        "remediated": bool(check.get("remediated")),
        "timestamp": check.get("timestamp"),
    }


class ReportGenerator:
    """Generate structured JSON compliance reports and human summaries."""

    RECOMMENDATION_LEVELS = (
        ("high", "CRITICAL", "high-severity checks have failed. Immediate remediation is required."),
        ("medium", "HIGH", "medium-severity checks have failed. Schedule remediation soon."),
        ("low", "MEDIUM", "low-severity checks have failed. Address during next maintenance window."),
    )

    def __init__(self, generator_version: str = config.GUARD_VERSION, console: Optional[Console] = None):
        self.generator_version = generator_version
        self.console = console or default_console

    def build_summary(self, checks: List[Dict[str, Any]]) -> Dict[str, Any]:
        score = compliance_score(checks)
        return {
            "total": len(checks),
            "passed": sum(1 for c in checks if c.get("status") == "pass"),
            "failed": sum(1 for c in checks if c.get("status") == "fail"),
            "errors": sum(1 for c in checks if c.get("status") == "error"),
            "remediated": sum(1 for c in checks if c.get("remediated")),
            "compliance_score": score,
            "status": status_label(score),
        }

    def build_severity_breakdown(self, checks: List[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
        breakdown = {}
        for severity in ("high", "medium", "low"):
            bucket = [c for c in checks if c.get("severity") == severity]
            breakdown[severity] = {
                "total": len(bucket),
                "passed": sum(1 for c in bucket if c.get("status") == "pass"),
                "failed": sum(1 for c in bucket if c.get("status") == "fail"),
            }
        return breakdown

    def generate_recommendations(self, checks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Prioritised recommendations, always ending with one INFO entry."""
        failed = [c for c in checks if c.get("status") == "fail" and not c.get("remediated")]
        recommendations = []

        for severity, priority, text in self.RECOMMENDATION_LEVELS:
            affected = [c.get("id") for c in failed if c.get("severity") == severity]
            if affected:
                recommendations.append({
                    "priority": priority,
                    "message": f"{len(affected)} {text}",
                    "affected_checks": affected,
                })

        if not failed:
            message = "All checks passed! System is compliant with CIS benchmarks."
        else:
            message = "Use the AI-powered remediation feature to automatically fix failed checks."
        recommendations.append({"priority": "INFO", "message": message, "affected_checks": []})

        return recommendations

    def build_remediation_log(self, checks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        log = []
        for c in checks:
            if not c.get("remediated"):
                continue
            suggestion = c.get("ai_suggestion")
            log.append({
                "check_id": c.get("id"),
                "title": c.get("title"),
                "severity": c.get("severity"),
                "remediation_applied": True,
                "ai_suggestion": {
                    "root_cause": suggestion.get("root_cause"),
                    "fix_commands": suggestion.get("fix_commands", []),
                } if suggestion else None,
            })
        return log

    def generate_report(self, checks: List[Dict[str, Any]], system_info: Optional[Dict[str, Any]] = None,
                        timestamp: Optional[str] = None) -> Dict[str, Any]:
        """Generate the complete JSON report document."""
        system_info = system_info or {}
        summary = self.build_summary(checks)

        return {
            "metadata": {
                "report_title": config.REPORT_TITLE,
                "generated_at": timestamp or datetime.now().isoformat(),
                "generated_by": self.generator_version,
                "report_id": f"AUTOCIS-{int(time.time() * 1000)}",
            },
            "system_information": {
                "operating_system": system_info.get("os", "N/A"),
                "version": system_info.get("version", "N/A"),
                "hostname": system_info.get("hostname", "N/A"),
                "username": system_info.get("user", "N/A"),
                "platform": system_info.get("platform", "N/A"),
                "architecture": system_info.get("arch", "N/A"),
                "cpus": system_info.get("cpus") or "N/A",
                "total_memory": system_info.get("total_memory") or "N/A",
                "uptime": system_info.get("uptime") or "N/A",
            },
            "executive_summary": {
                "compliance_score": f"{summary['compliance_score']}%",
                "total_checks": summary["total"],
                "passed_checks": summary["passed"],
                "failed_checks": summary["failed"],
                "errored_checks": summary["errors"],
                "remediated_checks": summary["remediated"],
                "status": summary["status"],
            },
            "detailed_findings": {
                "passed": [format_check(c) for c in checks if c.get("status") == "pass"],
                "failed": [format_check(c) for c in checks if c.get("status") == "fail"],
                "errors": [format_check(c) for c in checks if c.get("status") == "error"],
            },
            "remediation_log": self.build_remediation_log(checks),
            "recommendations": self.generate_recommendations(checks),
            "compliance_breakdown": {
                "by_severity": self.build_severity_breakdown(checks),
            },
        }

    def save_report(self, report: Dict[str, Any], output_dir: Optional[str] = None) -> str:
        """Save report to JSON file."""
        output_dir = output_dir or config.REPORTS_DIR
        os.makedirs(output_dir, exist_ok=True)

        filepath = os.path.join(output_dir, f"autocis-report-{int(time.time() * 1000)}.json")

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)

        self.console.thinking(f"Report saved to: {filepath}")
        return filepath

    def print_summary(self, report: Dict[str, Any], report_path: str):
        """Print human-readable summary."""
        summary = report["executive_summary"]
        lines = [
            f"REPORT: saved to {report_path}",
            "",
            f"Compliance Score: {summary['compliance_score']} ({summary['status']})",
            f"  Total Checks: {summary['total_checks']}",
            f"  Passed: {summary['passed_checks']}",
            f"  Failed: {summary['failed_checks']}",
            f"  Errors: {summary['errored_checks']}",
            f"  Remediated: {summary['remediated_checks']}",
            "",
            "By Severity:",
        ]
        for severity, counts in report["compliance_breakdown"]["by_severity"].items():
            if counts["total"]:
                lines.append(
                    f"  {severity.capitalize()}: {counts['passed']}/{counts['total']} passed, {counts['failed']} failed"
                )
        lines.append("")
        lines.append("Recommendations:")
        for rec in report["recommendations"]:
            lines.append(f"  [{rec['priority']}] {rec['message']}")

        self.console.banner("\n".join(lines))
