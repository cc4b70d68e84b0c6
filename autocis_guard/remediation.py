"""
AI remediation for failed compliance checks.

The advisor asks the advisory service for a JSON remediation, and degrades in
two steps when the answer is unusable: heuristic extraction from free text,
then a deterministic fallback built from the check itself. All three paths
return the same suggestion shape, tagged by ``source``.
"""

import json
import re
import sys
from typing import Any, Dict, List, Optional

from . import config
from .console import Console, default_console
from .errors import AdvisoryError
from .executor import is_windows, shell_type_for


BASH_COMMAND_PREFIXES = (
    "sudo", "echo", "chmod", "chown", "systemctl", "apt-get", "yum", "dnf",
    "modprobe", "sed", "sysctl",
)
POWERSHELL_COMMAND_PREFIXES = (
    "Set-", "Get-", "Enable-", "Disable-", "New-", "Remove-", "secedit",
    "reg add", "auditpol", "net accounts",
)

ROOT_CAUSE_LABELS = ("root cause", "why", "reason")
IMPACT_LABELS = ("security impact", "risk", "vulnerability")

DEFAULT_ROOT_CAUSE = "Configuration does not meet CIS benchmark requirements."
DEFAULT_IMPACT = "This misconfiguration may expose the system to security vulnerabilities."
DEFAULT_STEPS = [
    "Re-run the compliance check",
    "Verify output matches expected value",
    "Check system logs for errors",
]

PLACEHOLDER_WORDS = ("placeholder", "example", "todo")
MIN_COMMAND_LENGTH = 5

_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*")
_SECTION_END = r"(?=\n\s*\n|root cause|security impact|fix commands?|verification|\{|$)"


def build_remediation_prompt(check: Dict[str, Any], system_info: Dict[str, Any], shell_type: str) -> str:
    """Prompt embedding the system context and the failed check."""
    target = "Windows" if shell_type == "PowerShell" else "Linux"

    if shell_type == "PowerShell":
        examples = """**Windows PowerShell Examples:**
- Registry: Set-ItemProperty -Path "HKLM:\\Path" -Name "Value" -Value 1
- Service: Stop-Service ServiceName; Set-Service ServiceName -StartupType Disabled
- Firewall: Set-NetFirewallProfile -Profile Domain -Enabled True
- User: Disable-LocalUser -Name "Administrator"
- Policy: secedit /configure /db secedit.sdb /cfg C:\\policy.inf"""
    else:
        examples = """**Linux Bash Examples:**
- File: echo "install cramfs /bin/true" | sudo tee -a /etc/modprobe.d/cramfs.conf
- Permission: sudo chmod 600 /etc/ssh/sshd_config
- Service: sudo systemctl disable servicename.service
- Sysctl: echo "net.ipv4.ip_forward = 0" | sudo tee -a /etc/sysctl.conf && sudo sysctl -p
- Package: sudo apt-get install -y auditd (or yum/dnf)"""

    return f"""You are a cybersecurity expert specializing in CIS benchmark compliance for {target} systems.

**System Information:**
- Operating System: {system_info.get('os', 'Unknown')}
- Version: {system_info.get('version', 'Unknown')}
- Platform: {system_info.get('platform', 'Unknown')}
- Architecture: {system_info.get('arch', 'Unknown')}
- Shell Type: {shell_type}

**Failed CIS Benchmark Check:**
- CIS ID: {check.get('id')}
- Title: {check.get('title')}
- Description: {check.get('description') or 'N/A'}
- Severity Level: {check.get('severity')}
- Category: {check.get('category') or 'General'}

**Check Command Executed:**
```
{check.get('check_command')}
```

**Expected Output:**
```
{check.get('expected')}
```

**Actual Output (FAILED):**
```
{check.get('actual_output')}
```

**Your Task:**
Provide a remediation solution in STRICT JSON format with these EXACT keys:

{{
  "rootCause": "Explain in 2-3 sentences WHY this check failed based on the actual output",
  "securityImpact": "Explain the security risks of leaving this unfixed (2-3 sentences)",
  "fixCommands": [
    "actual {shell_type} command 1 that will fix this issue",
    "actual {shell_type} command 2 if needed"
  ],
  "verificationSteps": [
    "Step to verify the fix worked",
    "How to confirm compliance"
  ]
}}

**CRITICAL REQUIREMENTS:**
1. Return ONLY valid JSON - no markdown, no backticks, no explanations
2. fixCommands MUST be real, executable {shell_type} commands
3. Commands must be production-safe and non-interactive
4. Commands should be specific to {target}
5. Include 2-5 commands that will actually fix the issue
6. Do NOT use placeholder commands like "run-fix-command"
7. Commands should handle the difference between expected "{check.get('expected')}" and actual "{check.get('actual_output')}"

{examples}

Generate the JSON response NOW:"""


def sanitize_commands(commands: List[Any]) -> List[str]:
    """Strip backticks and whitespace, drop entries left empty."""
    cleaned = []
    for cmd in commands:
        if not isinstance(cmd, str):
            continue
        cmd = cmd.replace("`", "").strip()
        if cmd:
            cleaned.append(cmd)
    return cleaned


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced top-level {...} block, honouring JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find("{", start + 1)
    return None


def parse_strict(text: str) -> Dict[str, Any]:
    """
    Decode the JSON remediation from the advisory text.

    Raises:
        AdvisoryError: when no valid object with a root cause and at least one
            usable fix command can be found.
    """
    clean_text = _FENCE_RE.sub("", text or "").strip()

    block = find_json_object(clean_text)
    if block is None:
        raise AdvisoryError("No JSON found in AI response")

    try:
        parsed = json.loads(block)
    except ValueError as e:
        raise AdvisoryError(f"Invalid JSON in AI response: {e}") from e

    root_cause = parsed.get("rootCause")
    fix_commands = parsed.get("fixCommands")
    if not isinstance(root_cause, str) or not root_cause.strip() or not isinstance(fix_commands, list):
        raise AdvisoryError("Invalid JSON structure from AI")

    fix_commands = sanitize_commands(fix_commands)
    if not fix_commands:
        raise AdvisoryError("AI response contained no usable fix commands")

    steps = parsed.get("verificationSteps")
    impact = parsed.get("securityImpact")
    return {
        "root_cause": root_cause.strip(),
        "security_impact": impact.strip() if isinstance(impact, str) and impact.strip() else DEFAULT_IMPACT,
        "fix_commands": fix_commands,
        "verification_steps": [s.strip() for s in steps if isinstance(s, str) and s.strip()]
        if isinstance(steps, list) else [],
        "fallback": False,
        "source": "strict",
    }


def extract_section(text: str, keywords) -> Optional[str]:
    for keyword in keywords:
        regex = re.compile(rf"{re.escape(keyword)}[:\s]+(.*?){_SECTION_END}", re.IGNORECASE | re.DOTALL)
        match = regex.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()[:config.SECTION_MAX_CHARS]
    return None


def extract_commands(text: str, windows: bool) -> List[str]:
    prefixes = POWERSHELL_COMMAND_PREFIXES if windows else BASH_COMMAND_PREFIXES
    commands = []
    for line in text.splitlines():
        trimmed = re.sub(r"^[-*]\s*", "", line.strip()).replace("`", "").strip()
        if trimmed.startswith(prefixes):
            commands.append(trimmed)
            if len(commands) == config.MAX_EXTRACTED_COMMANDS:
                break
    return commands


def extract_steps(text: str) -> List[str]:
    steps = []
    for line in text.splitlines():
        trimmed = line.strip()
        if re.match(r"^\d+\.", trimmed) or trimmed.startswith(("- ", "* ")):
            step = re.sub(r"^[-*]\s*", "", re.sub(r"^\d+\.\s*", "", trimmed)).strip()
            if 10 < len(step) < 200:
                steps.append(step)
                if len(steps) == config.MAX_EXTRACTED_STEPS:
                    break
    return steps


def parse_heuristic(text: str, windows: bool) -> Dict[str, Any]:
    """Pull a remediation out of free text; missing parts get boilerplate."""
    shell = "powershell" if windows else "bash"
    text = text or ""
    return {
        "root_cause": extract_section(text, ROOT_CAUSE_LABELS) or DEFAULT_ROOT_CAUSE,
        "security_impact": extract_section(text, IMPACT_LABELS) or DEFAULT_IMPACT,
        "fix_commands": extract_commands(text, windows)
        or [f"# Manual fix required - check CIS documentation for {shell} commands"],
        "verification_steps": extract_steps(text) or list(DEFAULT_STEPS),
        "fallback": False,
        "source": "heuristic",
    }


def build_fallback_remediation(check: Dict[str, Any], shell_type: str,
                               reason: str = "AI service unavailable") -> Dict[str, Any]:
    """Deterministic suggestion built only from the check's own fields."""
    title = check.get("title", check.get("id"))
    expected = check.get("expected")
    actual = check.get("actual_output")
    severity = check.get("severity", "medium")

    if severity in ("high", "critical"):
        urgency = "Immediate attention is strongly recommended."
    else:
        urgency = "Should be addressed in the next maintenance window."

    return {
        "root_cause": (
            f'The check "{title}" failed because the actual system output "{actual}" does not match '
            f'the expected CIS benchmark value "{expected}". This indicates a configuration gap.'
        ),
        "security_impact": f"This is a {severity} severity issue that may expose the system to security risks. {urgency}",
        "fix_commands": [
            f"# {shell_type} command needed for: {title}",
            f"# Check the CIS Benchmark documentation for {check.get('id')}",
            f"# Expected value: {expected}",
            f"# Current value: {actual}",
        ],
        "verification_steps": [
            f"Re-run the check command: {check.get('check_command')}",
            f"Verify the output matches: {expected}",
            "Review CIS benchmark documentation for manual steps",
            "Test in a non-production environment first",
            "Check system logs after applying changes",
        ],
        "fallback": True,
        "source": "fallback",
        "error": f"{reason} - manual remediation required",
    }


class RemediationAdvisor:
    """Turn a failed check into a remediation suggestion."""

    def __init__(self, client, console: Optional[Console] = None):
        self.client = client
        self.console = console or default_console

    def validate_commands(self, commands: List[str]):
        if not commands:
            raise AdvisoryError("No commands generated")
        for cmd in commands:
            if any(word in cmd.lower() for word in PLACEHOLDER_WORDS):
                self.console.warning(f"Command appears to be a placeholder: {cmd}")
            if len(cmd) < MIN_COMMAND_LENGTH:
                raise AdvisoryError(f"Command too short: {cmd}")

    def parse_response(self, text: str, windows: bool) -> Dict[str, Any]:
        try:
            return parse_strict(text)
        except AdvisoryError as e:
            self.console.warning(f"Strict parse failed ({e}), trying heuristic extraction")
            return parse_heuristic(text, windows)

    def get_remediation(self, check: Dict[str, Any], system_info: Optional[Dict[str, Any]] = None,
                        platform_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Ask the advisory service for a fix; never raises.

        The suggestion's ``fallback`` flag is True when nothing usable came
        back and the guidance was synthesized locally.
        """
        system_info = system_info or {}
        platform_name = platform_name or system_info.get("platform") or sys.platform
        windows = is_windows(platform_name)
        shell_type = shell_type_for(platform_name)

        self.console.banner(f"Getting AI remediation for: {check.get('id')}")

        try:
            prompt = build_remediation_prompt(check, system_info, shell_type)
            text = self.client.complete(prompt)
            if not text or not text.strip():
                raise AdvisoryError("Empty response from advisory service")

            self.console.thinking(f"AI response received ({len(text)} characters), parsing...")
            suggestion = self.parse_response(text, windows)
            self.validate_commands(suggestion["fix_commands"])
        except Exception as e:  # any failure degrades to the local fallback
            self.console.error(f"AI remediation error: {e}")
            self.console.thinking("Generating fallback remediation...")
            return build_fallback_remediation(check, shell_type, str(e) or type(e).__name__)

        self.console.thinking(
            f"AI remediation generated ({suggestion['source']}): {len(suggestion['fix_commands'])} commands"
        )
        return suggestion
