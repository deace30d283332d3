import pathlib
import sys
import threading
import unittest


ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from town_fakes import FakeRunner
from townwatch.doctor import load_doctor_report, parse_doctor_output
from townwatch.errors import CommandError, SourceError
from townwatch.models import CheckStatus


REPORT = "\n".join(
    [
        "Running town diagnostics...",
        "",
        "✓ town-config: town.json valid",
        "⚠ stale-hooks: 2 hooks older than 24h",
        "    perch/polecats/baker",
        "    sidekick/polecats/charlie",
        "    → run 'gt hook prune'",
        "✗ beads-db: database locked",
        "    → close other bd processes",
        "⚠ orphan-sessions: 1 orphaned tmux session",
        "    gt-perch-dog",
        "",
        "38 checks, 30 passed, 7 warnings, 1 errors",
    ]
)


class DoctorParseTests(unittest.TestCase):
    def test_summary_counts(self):
        report = parse_doctor_output(REPORT)
        self.assertEqual(
            (report.total_checks, report.passed_count, report.warning_count, report.error_count),
            (38, 30, 7, 1),
        )

    def test_checks_with_details_and_fixes(self):
        report = parse_doctor_output(REPORT)
        self.assertEqual(
            [check.name for check in report.checks],
            ["town-config", "stale-hooks", "beads-db", "orphan-sessions"],
        )
        town, stale, beads, orphans = report.checks
        self.assertEqual(town.status, CheckStatus.PASSED)
        self.assertEqual(town.details, [])
        self.assertEqual(stale.status, CheckStatus.WARNING)
        self.assertEqual(stale.details, ["perch/polecats/baker", "sidekick/polecats/charlie"])
        self.assertEqual(stale.suggest_fix, "run 'gt hook prune'")
        self.assertEqual(beads.status, CheckStatus.ERROR)
        self.assertEqual(beads.message, "database locked")
        self.assertEqual(beads.details, [])
        self.assertEqual(beads.suggest_fix, "close other bd processes")
        self.assertEqual(orphans.details, ["gt-perch-dog"])
        self.assertTrue(report.has_issues())
        self.assertEqual([check.name for check in report.errors()], ["beads-db"])
        self.assertEqual(len(report.warnings()), 2)

    def test_singular_summary_and_empty_output(self):
        report = parse_doctor_output("1 check, 1 passed, 0 warnings, 0 errors")
        self.assertEqual(report.total_checks, 1)
        self.assertFalse(report.has_issues())
        self.assertEqual(parse_doctor_output("").checks, [])


class DoctorLoadTests(unittest.TestCase):
    def test_non_zero_exit_still_parses(self):
        runner = FakeRunner()
        runner.on("gt doctor", "", stderr=REPORT, returncode=1)
        report = load_doctor_report("/tmp/test-town", runner)
        self.assertEqual(report.error_count, 1)
        self.assertEqual(len(report.checks), 4)

    def test_launch_failure_is_error(self):
        with self.assertRaises(SourceError):
            load_doctor_report("/tmp/test-town", _LaunchFailure())

    def test_cancellation_is_error(self):
        runner = FakeRunner().on("gt doctor", REPORT, delay=5)
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(SourceError):
            load_doctor_report("/tmp/test-town", runner, cancel)


class _LaunchFailure:
    def run(self, argv, *, cwd, cancel=None):
        raise CommandError(argv, f"{argv[0]}: executable file not found")


if __name__ == "__main__":
    unittest.main()
