from __future__ import annotations

import argparse
import io
import sys
import unittest
from datetime import datetime
from pathlib import Path

from dbml_erd.logging_setup import setup_logging


def _timestamp(now: datetime | None = None) -> str:
    ts = now or datetime.now()
    return ts.strftime("%Y%m%d_%H%M%S")


def _failure_log_path(log_dir: Path, now: datetime | None = None) -> Path:
    return log_dir / f"dbml_erd_failures_{_timestamp(now)}.txt"


def _failed_test_ids(result: unittest.result.TestResult) -> list[str]:
    return [test.id() for test, _ in (*result.failures, *result.errors)]


def _build_failure_report(result: unittest.result.TestResult, test_output: str, pattern: str = "test_*.py") -> str:
    lines: list[str] = []
    lines.append(f"Timestamp: {datetime.now().isoformat(timespec='seconds')}")
    lines.append(f"Pattern: {pattern}")
    lines.append(
        "Summary: "
        f"ran={result.testsRun}, failures={len(result.failures)}, errors={len(result.errors)}"
    )
    failed = _failed_test_ids(result)
    if failed:
        lines.append("Failed tests:")
        lines.extend(f"  - {test_id}" for test_id in failed)
    lines.append("Fix hint: rerun one failing module with `python -m unittest tests.<module>` after fixing it.")
    lines.append("")
    lines.append(test_output.rstrip())
    lines.append("")
    return "\n".join(lines)


def _write_failure_report(log_dir: Path, content: str, now: datetime | None = None) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    path = _failure_log_path(log_dir, now)
    path.write_text(content, encoding="utf-8")
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the dbml_erd test suite and keep a log of failures.")
    parser.add_argument("--pattern", default="test_*.py")
    parser.add_argument("--log-dir", default=str(Path("tests") / "testlogs"))
    parser.add_argument("--log-level", default="WARNING", help="level for library log output during tests")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    loader = unittest.TestLoader()
    suite = loader.discover(start_dir="tests", pattern=args.pattern, top_level_dir=".")

    output = io.StringIO()
    runner = unittest.TextTestRunner(stream=output, verbosity=2)
    result = runner.run(suite)

    test_output = output.getvalue()
    sys.stdout.write(test_output)

    if result.wasSuccessful():
        print("All tests passed. No failure log written.")
        return 0

    report = _build_failure_report(result, test_output, args.pattern)
    log_path = _write_failure_report(Path(args.log_dir), report)
    print(f"Test failures detected. Log written to: {log_path}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
