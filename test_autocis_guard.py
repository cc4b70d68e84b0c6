#!/usr/bin/env python3
"""
Test suite for the AutoCIS Guard session, CLI and HTTP API.
Runs without root privileges or a live advisory service.
"""

import json
import os
import sys
import tempfile
import unittest

from autocis_guard import config
from autocis_guard.cli import AutoCISGuard, build_parser, main
from autocis_guard.console import Console
from autocis_guard.errors import AdvisoryError, ExecutionError
from autocis_guard.system_info import format_bytes, format_uptime, get_system_info
from autocis_guard.web import create_app


QUIET = Console(quiet=True)

SYSTEM_INFO = {"os": "Ubuntu", "version": "22.04", "platform": "linux", "arch": "x86_64", "hostname": "box"}

BENCHMARKS = [
    {"id": "1.1", "title": "IP forwarding disabled", "severity": "medium",
     "check_command": "sysctl net.ipv4.ip_forward", "expected": "net.ipv4.ip_forward = 0",
     "comparison_type": "exact"},
    {"id": "5.2", "title": "SSH root login disabled", "severity": "high",
     "check_command": "sshd -T | grep permitrootlogin", "expected": "permitrootlogin no",
     "comparison_type": "exact"},
]

STRICT_RESPONSE = json.dumps({
    "rootCause": "Root login is permitted.",
    "securityImpact": "Direct root brute force.",
    "fixCommands": ["sudo sed -i 's/^PermitRootLogin.*/PermitRootLogin no/' /etc/ssh/sshd_config"],
    "verificationSteps": ["sshd -T | grep permitrootlogin"],
})


class FakeRunner:

    def __init__(self, outputs=None):
        self.outputs = outputs or {}
        self.executed = []

    def execute(self, command, platform_name=None, **kwargs):
        self.executed.append(command)
        value = self.outputs.get(command, "")
        if isinstance(value, Exception):
            raise value
        return value


class FakeClient:

    def __init__(self, response=STRICT_RESPONSE, available=True):
        self.response = response
        self.available = available

    def is_available(self):
        return self.available

    def list_models(self):
        return [{"name": "llama3"}, {"name": "mistral"}]

    def complete(self, prompt):
        if self.response is None:
            raise AdvisoryError("service unreachable")
        return self.response


class GuardTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.benchmarks_dir = os.path.join(self.tmpdir.name, "benchmarks")
        os.makedirs(self.benchmarks_dir)
        with open(os.path.join(self.benchmarks_dir, config.LINUX_BENCHMARKS), "w") as f:
            json.dump(BENCHMARKS, f)

        self.runner = FakeRunner({
            "sysctl net.ipv4.ip_forward": "net.ipv4.ip_forward = 0",
            "sshd -T | grep permitrootlogin": "permitrootlogin yes",
        })
        self.client = FakeClient()
        self.guard = self.make_guard()

    def make_guard(self, client=None):
        return AutoCISGuard(
            platform_name="linux",
            benchmarks_dir=self.benchmarks_dir,
            output_dir=os.path.join(self.tmpdir.name, "reports"),
            client=client or self.client,
            console=QUIET,
            runner=self.runner,
            system_info_provider=lambda: dict(SYSTEM_INFO),
        )

    def tearDown(self):
        self.tmpdir.cleanup()


class TestAutoCISGuard(GuardTestCase):
    """Test the assessment session."""

    def test_scan_and_failed_checks(self):
        results = self.guard.scan()
        self.assertEqual([r["status"] for r in results], ["pass", "fail"])
        self.assertEqual([c["id"] for c in self.guard.failed_checks()], ["5.2"])

    def test_apply_remediation_marks_check(self):
        self.guard.scan()
        check = self.guard.failed_checks()[0]
        suggestion = self.guard.get_remediation(check)
        self.assertEqual(suggestion["source"], "strict")

        updated, outcome = self.guard.apply_remediation(check, suggestion)
        self.assertTrue(outcome["success"])
        self.assertTrue(updated["remediated"])
        self.assertEqual(updated["status"], "pass")
        self.assertIs(updated["ai_suggestion"], suggestion)
        self.assertEqual(self.guard.results[1], updated)
        self.assertFalse(check["remediated"])
        self.assertEqual(self.guard.failed_checks(), [])
        self.assertIn(suggestion["fix_commands"][0], self.runner.executed)

    def test_fallback_suggestion_never_applied(self):
        guard = self.make_guard(client=FakeClient(response=None))
        guard.scan()
        check = guard.failed_checks()[0]
        suggestion = guard.get_remediation(check)
        self.assertTrue(suggestion["fallback"])

        executed_before = list(self.runner.executed)
        updated, outcome = guard.apply_remediation(check, suggestion)
        self.assertFalse(outcome["success"])
        self.assertIsNone(outcome["backup_id"])
        self.assertFalse(updated["remediated"])
        self.assertEqual(self.runner.executed, executed_before)

    def test_failed_command_leaves_check_unremediated(self):
        self.guard.scan()
        check = self.guard.failed_checks()[0]
        suggestion = self.guard.get_remediation(check)
        self.runner.outputs[suggestion["fix_commands"][0]] = ExecutionError("permission denied")

        updated, outcome = self.guard.apply_remediation(check, suggestion)
        self.assertFalse(outcome["success"])
        self.assertFalse(updated["remediated"])
        self.assertEqual(self.guard.results[1]["status"], "fail")

    def test_cancelled_batch_does_not_remediate(self):
        guard = self.guard

        class CancellingRunner(FakeRunner):
            def execute(inner, command, platform_name=None, **kwargs):
                if command == "echo one":
                    guard.cancel_event.set()
                return super().execute(command, platform_name)

        guard.scan()
        check = guard.failed_checks()[0]
        runner = CancellingRunner()
        guard.executor.runner = runner

        updated, outcome = guard.apply_remediation(check, {"fix_commands": ["echo one", "echo two"]})
        self.assertEqual(runner.executed, ["echo one"])
        self.assertTrue(outcome["cancelled"])
        self.assertFalse(outcome["success"])
        self.assertFalse(updated["remediated"])
        self.assertEqual(guard.results[1]["status"], "fail")

    def test_comment_only_commands_do_not_remediate(self):
        self.guard.scan()
        check = self.guard.failed_checks()[0]
        updated, outcome = self.guard.apply_remediation(check, {"fix_commands": ["# nothing to run"]})
        self.assertTrue(outcome["success"])
        self.assertFalse(updated["remediated"])

    def test_remediate_failed_respects_confirmation(self):
        self.guard.scan()
        outcomes = self.guard.remediate_failed(apply=True, confirm=lambda check, suggestion: False)
        self.assertEqual(len(outcomes), 1)
        self.assertIsNone(outcomes[0]["outcome"])
        self.assertFalse(self.guard.results[1]["remediated"])

        outcomes = self.guard.remediate_failed(apply=True, confirm=lambda check, suggestion: True)
        self.assertTrue(outcomes[0]["outcome"]["success"])
        self.assertTrue(self.guard.results[1]["remediated"])

    def test_remediate_without_apply_only_suggests(self):
        self.guard.scan()
        outcomes = self.guard.remediate_failed(apply=False)
        self.assertEqual(outcomes[0]["check_id"], "5.2")
        self.assertIsNone(outcomes[0]["outcome"])

    def test_report_after_remediation(self):
        self.guard.scan()
        self.guard.remediate_failed(apply=True)
        report = self.guard.generate_report()
        self.assertEqual(report["executive_summary"]["compliance_score"], "100%")
        self.assertEqual(report["executive_summary"]["remediated_checks"], 1)
        self.assertEqual(len(report["remediation_log"]), 1)
        self.assertEqual(report["system_information"]["hostname"], "box")

        path = self.guard.save_report(report)
        self.assertTrue(path.startswith(os.path.join(self.tmpdir.name, "reports")))


class TestHttpApi(GuardTestCase):
    """Test the JSON API with Flask's test client."""

    def setUp(self):
        super().setUp()
        self.app = create_app(self.guard)
        self.http = self.app.test_client()

    def test_status(self):
        data = self.http.get("/api/status").get_json()
        self.assertTrue(data["available"])
        self.assertEqual(data["models"], ["llama3", "mistral"])

    def test_status_unavailable(self):
        self.client.available = False
        data = self.http.get("/api/status").get_json()
        self.assertFalse(data["available"])
        self.assertEqual(data["models"], [])

    def test_system_info(self):
        self.assertEqual(self.http.get("/api/system-info").get_json()["os"], "Ubuntu")

    def test_privileges(self):
        self.assertIn("elevated", self.http.get("/api/privileges").get_json())

    def test_scan(self):
        data = self.http.post("/api/scan").get_json()
        self.assertTrue(data["success"])
        self.assertEqual([r["id"] for r in data["results"]], ["1.1", "5.2"])

    def test_remediation(self):
        check = self.http.post("/api/scan").get_json()["results"][1]
        data = self.http.post("/api/remediation", json=check).get_json()
        self.assertTrue(data["success"])
        self.assertEqual(data["suggestion"]["source"], "strict")

    def test_remediation_requires_id(self):
        response = self.http.post("/api/remediation", json={"title": "no id"})
        self.assertEqual(response.status_code, 400)

    def test_apply_fix(self):
        self.http.post("/api/scan")
        response = self.http.post("/api/apply-fix", json={
            "check_id": "5.2",
            "fix_commands": ["sudo systemctl restart sshd"],
        })
        data = response.get_json()
        self.assertTrue(data["success"])
        self.assertTrue(data["backup_id"].startswith("backup-5.2-"))
        self.assertTrue(self.guard.results[1]["remediated"])

    def test_apply_fix_blocks_dangerous_command(self):
        data = self.http.post("/api/apply-fix", json={
            "check_id": "5.2",
            "fix_commands": ["rm -rf /"],
        }).get_json()
        self.assertFalse(data["success"])
        self.assertTrue(data["errors"][0]["blocked"])
        self.assertNotIn("rm -rf /", self.runner.executed)

    def test_apply_fix_validation(self):
        self.assertEqual(self.http.post("/api/apply-fix", json={}).status_code, 400)
        self.assertEqual(self.http.post("/api/apply-fix", json={"check_id": "5.2"}).status_code, 400)
        self.assertEqual(self.http.post("/api/apply-fix", json={
            "check_id": "5.2", "fix_commands": "sudo true"}).status_code, 400)

    def test_report(self):
        self.http.post("/api/scan")
        data = self.http.post("/api/report", json={}).get_json()
        self.assertTrue(data["success"])
        self.assertTrue(os.path.exists(data["path"]))
        self.assertEqual(data["report"]["executive_summary"]["total_checks"], 2)

    def test_report_with_explicit_checks(self):
        data = self.http.post("/api/report", json={"checks": []}).get_json()
        self.assertEqual(data["report"]["executive_summary"]["compliance_score"], "0%")

    def test_report_rejects_non_list_checks(self):
        self.assertEqual(self.http.post("/api/report", json={"checks": "all"}).status_code, 400)


class TestSystemInfo(unittest.TestCase):

    def test_format_bytes(self):
        self.assertEqual(format_bytes(0), "0 Bytes")
        self.assertEqual(format_bytes(512), "512 Bytes")
        self.assertEqual(format_bytes(1024), "1 KB")
        self.assertEqual(format_bytes(1536), "1.5 KB")
        self.assertEqual(format_bytes(8 * 1024 ** 3), "8 GB")

    def test_format_uptime(self):
        self.assertEqual(format_uptime(30), "0m")
        self.assertEqual(format_uptime(90061), "1d 1h 1m")
        self.assertEqual(format_uptime(7200), "2h")

    def test_get_system_info(self):
        info = get_system_info()
        for key in ("os", "version", "hostname", "user", "platform", "arch", "cpus",
                    "total_memory", "uptime", "timestamp"):
            self.assertIn(key, info)
        self.assertEqual(info["platform"], sys.platform)


class TestCli(unittest.TestCase):
    """Test argument handling and a full session."""

    def test_no_action_prints_help(self):
        self.assertEqual(main([]), 1)

    def test_parser_defaults(self):
        args = build_parser().parse_args(["--scan"])
        self.assertTrue(args.scan)
        self.assertFalse(args.apply)
        self.assertEqual(args.timeout, config.DEFAULT_TIMEOUT_MS // 1000)
        self.assertEqual(args.model, config.ADVISOR_MODEL)

    def test_non_positive_timeout_rejected(self):
        parser = build_parser()
        for value in ("0", "-3", "soon"):
            with self.assertRaises(SystemExit):
                parser.parse_args(["--scan", "--timeout", value])
        self.assertEqual(parser.parse_args(["--scan", "--timeout", "5"]).timeout, 5)

    @unittest.skipIf(sys.platform.startswith("win"), "POSIX shell required")
    def test_scan_session_writes_report(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            benchmarks_dir = os.path.join(tmpdir, "benchmarks")
            output_dir = os.path.join(tmpdir, "reports")
            os.makedirs(benchmarks_dir)
            with open(os.path.join(benchmarks_dir, config.LINUX_BENCHMARKS), "w") as f:
                json.dump([{"id": "T1", "check_command": "echo compliant", "expected": "compliant",
                            "comparison_type": "exact"}], f)

            code = main(["--scan", "--quiet", "--platform", "linux",
                         "--benchmarks-dir", benchmarks_dir, "--output-dir", output_dir])
            self.assertEqual(code, 0)

            reports = [name for name in os.listdir(output_dir) if name.startswith("autocis-report-")]
            self.assertEqual(len(reports), 1)
            with open(os.path.join(output_dir, reports[0])) as f:
                report = json.load(f)
            self.assertEqual(report["executive_summary"]["compliance_score"], "100%")


if __name__ == '__main__':
    unittest.main(verbosity=2)
