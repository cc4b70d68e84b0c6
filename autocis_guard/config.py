"""
Configuration constants for AutoCIS Guard.

Values that commonly differ between installations can be overridden through
environment variables; everything else is tuned per run with CLI flags.
"""

import os
from pathlib import Path


GUARD_VERSION = "AutoCIS Guard v1.0.0"
REPORT_TITLE = "AutoCIS Guard - Compliance Report"

# ============================================================================
# COMMAND EXECUTION
# ============================================================================

DEFAULT_TIMEOUT_MS = 30000  # 30 seconds
MAX_BUFFER_BYTES = 5 * 1024 * 1024  # 5MB per stream
EMPTY_OUTPUT = "(empty output)"
NO_OUTPUT_SUCCESS = "Command executed successfully (no output)"

POSIX_SHELL = "/bin/bash"
POSIX_FALLBACK_SHELL = "/bin/sh"
WINDOWS_SHELL = "powershell.exe"

# ============================================================================
# BENCHMARKS, REPORTS AND BACKUPS
# ============================================================================

DATA_DIR = Path(__file__).parent / "data"
LINUX_BENCHMARKS = "cis_linux.json"
WINDOWS_BENCHMARKS = "cis_windows.json"

REPORTS_DIR = os.getenv("AUTOCIS_REPORTS_DIR", os.path.join(os.getcwd(), "reports"))
BACKUPS_SUBDIR = "backups"
BACKUP_FAILED = "backup-failed"

# ============================================================================
# ADVISORY SERVICE
# ============================================================================

OLLAMA_URL = os.getenv("AUTOCIS_OLLAMA_URL", "http://localhost:11434")
ADVISOR_MODEL = os.getenv("AUTOCIS_MODEL", "llama3")
ADVISOR_TEMPERATURE = 0.3  # lower temperature for more consistent commands
ADVISOR_TIMEOUT = 120  # seconds
SECTION_MAX_CHARS = 400
MAX_EXTRACTED_COMMANDS = 5
MAX_EXTRACTED_STEPS = 5
