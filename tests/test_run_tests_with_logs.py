import tempfile
import unittest
from datetime import datetime
from pathlib import Path

import run_tests_with_logs as runner


def sample_broken_check():
    pass


class TestRunTestsWithLogs(unittest.TestCase):
    def test_failure_log_path_is_timestamped(self):
        path = runner._failure_log_path(Path("tests") / "testlogs", datetime(2026, 2, 8, 13, 45, 7))
        self.assertEqual(
            path.name,
            "dbml_erd_failures_20260208_134507.txt",
            "Failure log filename format mismatch. "
            "Fix: use dbml_erd_failures_YYYYMMDD_HHMMSS.txt naming.",
        )

    def test_write_failure_report_creates_parent_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp) / "nested" / "testlogs"
            path = runner._write_failure_report(log_dir, "report body", datetime(2026, 2, 8, 13, 45, 7))
            self.assertTrue(path.exists(), "Failure report file was not created.")
            self.assertEqual(path.read_text(encoding="utf-8"), "report body")

    def test_report_lists_failed_test_ids(self):
        result = unittest.TestResult()
        result.testsRun = 4
        result.failures = [(unittest.FunctionTestCase(sample_broken_check), "traceback")]
        result.errors = []

        report = runner._build_failure_report(result, "sample unittest output", "test_graph_*.py")
        self.assertIn("Pattern: test_graph_*.py", report)
        self.assertIn("Summary: ran=4, failures=1, errors=0", report)
        self.assertIn("sample_broken_check", report)
        self.assertIn("Fix hint:", report)
        self.assertIn("sample unittest output", report)

    def test_parser_defaults(self):
        args = runner.build_parser().parse_args([])
        self.assertEqual(args.pattern, "test_*.py")
        self.assertEqual(args.log_level, "WARNING")


if __name__ == "__main__":
    unittest.main()
