"""AutoCIS Guard: CIS benchmark compliance scanning with AI remediation."""

from .compliance import BenchmarkLoader, ComplianceScanner, compare_output
from .executor import CommandRunner, SafeExecutor
from .remediation import RemediationAdvisor
from .report import ReportGenerator

__version__ = "1.0.0"

__all__ = [
    "BenchmarkLoader",
    "CommandRunner",
    "ComplianceScanner",
    "RemediationAdvisor",
    "ReportGenerator",
    "SafeExecutor",
    "compare_output",
]
