"""Applies triage decisions to a report."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .decisions import (
    NoAction,
    RequestMoreInfo,
    ResolveDuplicate,
    ResolveInvalidModded,
    TriageDecision,
)
from .models import BugReport

logger = logging.getLogger(__name__)

DUPLICATE_LINK_TYPE = "Duplicate"


class ResultStatus(Enum):
    APPLIED = "applied"
    NOT_NEEDED = "not_needed"
    FAILED = "failed"


@dataclass
class TriageResult:
    """Outcome of one entry point run against one report."""
    status: ResultStatus
    decision: Optional[TriageDecision] = None
    errors: List[Exception] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status is ResultStatus.FAILED

    @classmethod
    def not_needed(cls, decision: Optional[TriageDecision] = None) -> "TriageResult":
        return cls(ResultStatus.NOT_NEEDED, decision)

    @classmethod
    def from_errors(cls, errors: List[Exception],
                    decision: Optional[TriageDecision] = None) -> "TriageResult":
        if errors:
            return cls(ResultStatus.FAILED, decision, errors)
        return cls(ResultStatus.APPLIED, decision)


def run_steps(report: BugReport, steps: List[Tuple[str, Callable[[], None]]]) -> List[Exception]:
    """Run every step in order and collect the failures.

    A failing step does not stop later steps; nothing is rolled back.
    """
    errors: List[Exception] = []
    for name, step in steps:
        try:
            step()
        except Exception as e:
            logger.warning("%s: %s failed: %s: %s", report.key, name, type(e).__name__, e)
            errors.append(e)
    return errors


class TriageActionExecutor:
    """Turns a :class:`TriageDecision` into calls on the report's actions."""

    def __init__(self, duplicate_message: str, modded_message: str, missing_crash_message: str):
        self.duplicate_message = duplicate_message
        self.modded_message = modded_message
        self.missing_crash_message = missing_crash_message

    def steps_for(self, report: BugReport, decision: TriageDecision) -> List[Tuple[str, Callable[[], None]]]:
        actions = report.actions
        if isinstance(decision, ResolveDuplicate):
            ticket = decision.ticket_id
            return [
                ("link", lambda: actions.create_link(DUPLICATE_LINK_TYPE, ticket)),
                ("comment", lambda: actions.add_comment(self.duplicate_message, ticket)),
                ("resolve as duplicate", actions.resolve_as_duplicate),
            ]
        if isinstance(decision, ResolveInvalidModded):
            return [
                ("comment", lambda: actions.add_comment(self.modded_message)),
                ("resolve as invalid", actions.resolve_as_invalid),
            ]
        if isinstance(decision, RequestMoreInfo):
            return [
                ("resolve as awaiting response", actions.resolve_as_awaiting_response),
                ("comment", lambda: actions.add_comment(self.missing_crash_message)),
            ]
        if isinstance(decision, NoAction):
            return []
        raise TypeError(f"Unknown triage decision: {decision!r}")

    def execute(self, report: BugReport, decision: TriageDecision) -> TriageResult:
        steps = self.steps_for(report, decision)
        if not steps:
            return TriageResult.not_needed(decision)

        result = TriageResult.from_errors(run_steps(report, steps), decision)
        if not result.failed:
            logger.info("%s: applied %s", report.key, decision)
        return result
