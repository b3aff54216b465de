"""Duplicate and modded-client decision engine.

``decide`` is a pure function from the classified crashes of one report to a
single :class:`TriageDecision`:

1. reports that were already triaged by a human are left alone;
2. a crash matching a configured signature resolves the report as a duplicate
   of the configured ticket, the most recently created match winning;
3. only when nothing matches, the report is resolved as invalid if at least
   one crash says the client is modded and no crash says it is not.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .decisions import NoAction, ResolveDuplicate, ResolveInvalidModded, TriageDecision
from .models import BugReport, ClassifiedCrash, CrashSignatureRule, ModdedConfidence

logger = logging.getLogger(__name__)

UNCONFIRMED = "Unconfirmed"


@dataclass(frozen=True)
class TriageGuards:
    """Report fields that show a human has already triaged the report."""
    confirmation_status: Optional[str] = None
    priority: Optional[str] = None

    @classmethod
    def from_report(cls, report: BugReport) -> "TriageGuards":
        return cls(report.confirmation_status, report.priority)

    def blocking_reason(self) -> Optional[str]:
        if (self.confirmation_status or UNCONFIRMED) != UNCONFIRMED:
            return f"confirmation status is already '{self.confirmation_status}'"
        if self.priority is not None:
            return f"priority is already '{self.priority}'"
        return None


def match_signature(crash: ClassifiedCrash,
                    rules: Sequence[CrashSignatureRule]) -> Optional[CrashSignatureRule]:
    """First rule, in configured order, that matches ``crash``."""
    for rule in rules:
        if rule.matches(crash):
            return rule
    return None


def find_duplicate(crashes: Sequence[ClassifiedCrash],
                   rules: Sequence[CrashSignatureRule]) -> Optional[Tuple[ClassifiedCrash, CrashSignatureRule]]:
    """Most recently created crash with a signature match.

    Ties keep the crash that was discovered first.
    """
    best: Optional[Tuple[ClassifiedCrash, CrashSignatureRule]] = None
    for crash in crashes:
        rule = match_signature(crash, rules)
        if rule is None:
            continue
        if best is None or crash.source.created_at > best[0].source.created_at:
            best = (crash, rule)
    return best


def is_modded_consensus(crashes: Sequence[ClassifiedCrash]) -> bool:
    """At least one crash is (likely) modded and none is explicitly not modded."""
    if any(c.modded_confidence is ModdedConfidence.NO for c in crashes):
        return False
    return any(c.is_modded for c in crashes)


def has_new_crash(crashes: Sequence[ClassifiedCrash], last_run: datetime) -> bool:
    return any(c.source.created_at > last_run for c in crashes)


def decide(crashes: Sequence[ClassifiedCrash],
           rules: Sequence[CrashSignatureRule],
           guards: Optional[TriageGuards] = None,
           last_run: Optional[datetime] = None) -> TriageDecision:
    """Turn the classified crashes of one report into a triage decision.

    Args:
        crashes: Classified crashes of every source of the report
        rules: Signature rules in configured order
        guards: Already-triaged checks; evaluated before anything else
        last_run: When given, reports without a crash created after it are skipped

    Returns:
        Exactly one decision
    """
    if guards is not None:
        reason = guards.blocking_reason()
        if reason:
            return NoAction(reason)

    if not crashes:
        return NoAction("no crash found")

    if last_run is not None and not has_new_crash(crashes, last_run):
        return NoAction("no crash added since last run")

    duplicate = find_duplicate(crashes, rules)
    if duplicate is not None:
        crash, rule = duplicate
        logger.debug("%s matches /%s/ -> %s", crash.source.origin, rule.pattern, rule.duplicate_ticket_id)
        return ResolveDuplicate(rule.duplicate_ticket_id, crash.source.created_at)

    if is_modded_consensus(crashes):
        return ResolveInvalidModded()

    return NoAction("no known crash and no modded consensus")


def decide_for_report(report: BugReport, crashes: List[ClassifiedCrash],
                      rules: Sequence[CrashSignatureRule],
                      last_run: Optional[datetime] = None) -> TriageDecision:
    decision = decide(crashes, rules, TriageGuards.from_report(report), last_run)
    logger.info("%s: %s", report.key, decision)
    return decision
