"""Asks for a crash report when a report mentions a crash but contains none."""
from __future__ import annotations

from typing import Optional, Sequence

from .decisions import NoAction, RequestMoreInfo, TriageDecision
from .engine import UNCONFIRMED
from .models import BugReport, ClassifiedCrash, CrashCategory

OPEN_STATUS = "Open"
CRASH_KEYWORD = "crash"

# Categories that count as "an actual crash dump"
CRASH_DUMP_CATEGORIES = (CrashCategory.ENGINE_CRASH, CrashCategory.GENERIC_JVM)


def missing_crash_guard(report: BugReport) -> Optional[str]:
    """Reason why the report is not eligible, or ``None`` if it is."""
    if (report.confirmation_status or UNCONFIRMED) != UNCONFIRMED:
        return f"confirmation status is already '{report.confirmation_status}'"
    if report.status != OPEN_STATUS:
        return f"status is '{report.status}'"
    if report.priority is not None:
        return f"priority is already '{report.priority}'"
    if CRASH_KEYWORD not in (report.description or "").lower():
        return "description does not mention a crash"
    return None


def decide_missing_crash(report: BugReport, crashes: Sequence[ClassifiedCrash]) -> TriageDecision:
    reason = missing_crash_guard(report)
    if reason:
        return NoAction(reason)
    if any(c.category in CRASH_DUMP_CATEGORIES for c in crashes):
        return NoAction("crash report is present")
    return RequestMoreInfo()
