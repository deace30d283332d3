"""Parser for the free-text report printed by ``gt doctor``.

The report is line oriented::

    ✓ town-config: town.json valid
    ⚠ stale-hooks: 2 hooks older than 24h
        perch/polecats/able
        → run 'gt hook prune'
    38 checks, 30 passed, 7 warnings, 1 errors

``gt doctor`` exits non-zero whenever it finds problems, so the exit status
is not an error here; only a launch failure or cancellation is.
"""

from __future__ import annotations

import re
import threading
from datetime import datetime, timezone
from pathlib import Path

from .commands import CommandRunner
from .errors import CommandCancelled, CommandError, SourceError
from .models import CheckStatus, DoctorCheck, DoctorReport

_SUMMARY = re.compile(r"^(\d+)\s+checks?,\s+(\d+)\s+passed,\s+(\d+)\s+warnings?,\s+(\d+)\s+errors?")
_CHECK = re.compile(r"^([✓⚠✗])\s+([a-z0-9-]+):\s+(.*)$")
_FIX = re.compile(r"^\s*→\s+(.+)$")
_DETAIL = re.compile(r"^\s{4}(.+)$")

_GLYPHS = {
    "✓": CheckStatus.PASSED,
    "⚠": CheckStatus.WARNING,
    "✗": CheckStatus.ERROR,
}


def parse_doctor_output(output: str) -> DoctorReport:
    report = DoctorReport(loaded_at=datetime.now(timezone.utc))
    current: DoctorCheck | None = None

    for line in output.splitlines():
        match = _SUMMARY.match(line)
        if match:
            report.total_checks, report.passed_count, report.warning_count, report.error_count = (
                int(group) for group in match.groups()
            )
            continue

        match = _CHECK.match(line)
        if match:
            if current is not None:
                report.checks.append(current)
            current = DoctorCheck(
                name=match.group(2),
                status=_GLYPHS[match.group(1)],
                message=match.group(3),
            )
            continue

        if current is None:
            continue

        match = _FIX.match(line)
        if match:
            current.suggest_fix = match.group(1)
            continue

        match = _DETAIL.match(line)
        if match:
            detail = match.group(1).strip()
            if detail and not detail.startswith("→"):
                current.details.append(detail)

    if current is not None:
        report.checks.append(current)
    return report


def load_doctor_report(
    root: Path | str,
    runner: CommandRunner,
    cancel: threading.Event | None = None,
) -> DoctorReport:
    argv = ["gt", "doctor"]
    try:
        result = runner.run(argv, cwd=root, cancel=cancel)
        output = "\n".join((result.stdout, result.stderr))
    except CommandCancelled as exc:
        raise SourceError(f"loading doctor report: {exc}") from exc
    except CommandError as exc:
        if exc.returncode is None:
            raise SourceError(f"loading doctor report: {exc}") from exc
        output = "\n".join((exc.stdout, exc.stderr))
    return parse_doctor_output(output)
