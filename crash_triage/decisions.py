"""Triage decisions produced by the decision engine.

The set of decisions is closed: the executor handles exactly these four.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


class TriageDecision:
    """Base class of all triage decisions."""

    __slots__ = ()


@dataclass(frozen=True)
class NoAction(TriageDecision):
    reason: str = ""


@dataclass(frozen=True)
class ResolveDuplicate(TriageDecision):
    ticket_id: str
    matched_at: datetime


@dataclass(frozen=True)
class ResolveInvalidModded(TriageDecision):
    pass


@dataclass(frozen=True)
class RequestMoreInfo(TriageDecision):
    pass
