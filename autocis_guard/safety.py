"""
Destructive command denylist.

Commands are lower-cased before matching, so every pattern is written in
lower case.
"""

import re
from typing import Optional, Tuple


DANGEROUS_PATTERNS = [
    # Any recursive flag (-r, -R, -rf, -r -f, --recursive) before a bare / or /* target.
    (r'\brm\b(?=[^|;&]*\s(-[a-z]*r|--recursive\b))[^|;&]*\s/\*?(\s|$)',
     "Recursive delete of the root filesystem"),
    (r'\brm\s+.*--no-preserve-root', "Recursive delete of the root filesystem"),
    (r'\bdd\s+.*of=/dev/(sd[a-z]|hd[a-z]|vd[a-z]|xvd[a-z]|nvme\d+n\d+|mmcblk\d+)',
     "Raw write to a block device"),
    (r'\bmkfs(\.\w+)?\b', "Filesystem format"),
    (r'\bformat\s+[a-z]:', "Windows volume format"),
    (r'\bformat-volume\b', "Windows volume format"),
    (r'\b(del|erase)\s+(/[a-z]\s+)*/s\s+(/[a-z]\s+)*[a-z]:\\?(\*|\s|$)', "Full volume delete"),
    (r'\b(rd|rmdir)\s+(/[a-z]\s+)*/s\s+(/[a-z]\s+)*[a-z]:\\?(\s|$)', "Full volume delete"),
    (r'\bremove-item\b(?=.*-recurse)(?=.*\s[\'"]?[a-z]:\\?\*?[\'"]?(\s|$))', "Full volume delete"),
    (r':\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:', "Fork bomb"),
    (r'>\s*/dev/(sd[a-z]|hd[a-z]|vd[a-z]|xvd[a-z]|nvme\d+n\d+)', "Redirect to a disk device"),
    (r'\bcurl\b.*\|\s*(sudo\s+)?(ba|z|da)?sh\b', "Remote script piped to a shell"),
    (r'\bwget\b.*\|\s*(sudo\s+)?(ba|z|da)?sh\b', "Remote script piped to a shell"),
    (r'\b(iwr|invoke-webrequest|irm|invoke-restmethod)\b.*\|\s*(iex|invoke-expression)\b',
     "Remote script piped to a shell"),
]

_COMPILED = [(re.compile(pattern), description) for pattern, description in DANGEROUS_PATTERNS]

POWER_STATE_PATTERN = re.compile(r'reboot|shutdown|restart-computer|stop-computer', re.IGNORECASE)


def find_dangerous_pattern(command: str) -> Optional[Tuple[str, str]]:
    """Return the (pattern, description) pair the command matches, if any."""
    cmd = (command or "").lower().strip()
    for regex, description in _COMPILED:
        if regex.search(cmd):
            return regex.pattern, description
    return None


def is_command_safe(command: str) -> bool:
    return find_dangerous_pattern(command) is None


def is_power_state_command(command: str) -> bool:
    """Reboot/shutdown style commands; a failure in one stops the batch."""
    return bool(POWER_STATE_PATTERN.search(command or ""))
