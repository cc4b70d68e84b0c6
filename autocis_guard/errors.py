"""Error taxonomy for AutoCIS Guard.

Only ExecutionError and AdvisoryError are raised across module boundaries.
Both are caught by the scanner, the advisor and the executor and turned into
data attached to a result; the remaining classes name the categories used in
log lines and error entries.
"""


class GuardError(Exception):
    """Base class for all AutoCIS Guard errors."""


class LoadError(GuardError):
    """Benchmark source missing or malformed."""


class ExecutionError(GuardError):
    """Command timed out, failed to spawn, or produced no usable output."""


class ComparisonError(GuardError):
    """Invalid regex or both operands absent."""


class AdvisoryError(GuardError):
    """Advisory service unreachable, empty, or unusable."""


class SafetyError(GuardError):
    """Command blocked by the destructive-pattern denylist."""


class BackupError(GuardError):
    """Backup record could not be written."""
