"""Data model shared by the crash triage pipeline.

Everything here is built fresh for one analysis run against one report and is
thrown away afterwards. The only durable effect of a run is what gets applied
through :class:`ReportActions`.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Pattern


# ============================================================================
# CLASSIFICATION ENUMS
# ============================================================================

class CrashCategory(Enum):
    """Kind of crash dump found in a source.

    The values double as the ``type`` used by signature rules in the config.
    """
    GENERIC_JVM = "java"
    ENGINE_CRASH = "minecraft"
    UNKNOWN = "unknown"


class ModdedConfidence(Enum):
    """How sure the crash report is that the game client was modified."""
    NO = "no"
    UNKNOWN = "unknown"
    LIKELY = "likely"
    DEFINITE = "definite"

    @property
    def is_modded(self) -> bool:
        return self in (ModdedConfidence.LIKELY, ModdedConfidence.DEFINITE)


class SourceKind(Enum):
    DESCRIPTION = "description"
    ATTACHMENT = "attachment"


# ============================================================================
# PIPELINE RECORDS
# ============================================================================

@dataclass(frozen=True)
class SourceOrigin:
    """Where a crash source came from."""
    kind: SourceKind
    name: Optional[str] = None

    @classmethod
    def description(cls) -> "SourceOrigin":
        return cls(SourceKind.DESCRIPTION)

    @classmethod
    def attachment(cls, name: str) -> "SourceOrigin":
        return cls(SourceKind.ATTACHMENT, name)

    @property
    def is_attachment(self) -> bool:
        return self.kind is SourceKind.ATTACHMENT

    def __str__(self) -> str:
        if self.is_attachment:
            return f"attachment '{self.name}'"
        return "description"


@dataclass(frozen=True)
class CrashSource:
    """A piece of text that may contain a crash dump."""
    origin: SourceOrigin
    text: str
    created_at: datetime


@dataclass(frozen=True)
class ParsedCrash:
    """Raw structural result returned by a :class:`CrashParser`."""
    category: CrashCategory
    exception: str
    modded: ModdedConfidence = ModdedConfidence.UNKNOWN
    version: Optional[str] = None
    is_client: Optional[bool] = None
    # JVM fatal error logs only: "lib.dll+0x1c82"
    problematic_frame: Optional[str] = None


@dataclass(frozen=True)
class ClassifiedCrash:
    """Normalized classification of one :class:`CrashSource`."""
    source: CrashSource
    category: CrashCategory
    signature: str
    modded_confidence: ModdedConfidence
    deobfuscated: Optional[str] = None
    exception: str = ""
    version: Optional[str] = None
    is_client: Optional[bool] = None

    @property
    def is_modded(self) -> bool:
        return self.modded_confidence.is_modded


@dataclass(frozen=True)
class CrashSignatureRule:
    """Configured signature that marks a crash as a known duplicate."""
    category: str
    pattern: str
    duplicate_ticket_id: str
    regex: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "regex", re.compile(self.pattern))

    def matches(self, crash: ClassifiedCrash) -> bool:
        if crash.category.value != self.category:
            return False
        return self.regex.search(crash.signature) is not None


@dataclass(frozen=True)
class DeobfuscationJob:
    """A deobfuscated trace waiting to be uploaded next to its crash report."""
    source_name: str
    content: str


# ============================================================================
# DATA ACCESS LAYER
# ============================================================================

class ReportActions(ABC):
    """Mutations the tracker exposes for a single report.

    Every method returns normally on success and raises on failure.
    """

    @abstractmethod
    def add_comment(self, template: str, *params: str) -> None:
        ...

    @abstractmethod
    def create_link(self, link_type: str, target_key: str) -> None:
        ...

    @abstractmethod
    def resolve_as_duplicate(self) -> None:
        ...

    @abstractmethod
    def resolve_as_invalid(self) -> None:
        ...

    @abstractmethod
    def resolve_as_awaiting_response(self) -> None:
        ...

    @abstractmethod
    def update_description(self, text: str) -> None:
        ...

    @abstractmethod
    def add_attachment(self, path: Path, on_uploaded: Callable[[], None]) -> None:
        """Upload ``path``; ``on_uploaded`` is invoked once the upload is done."""


@dataclass
class Attachment:
    name: str
    created: datetime
    open_stream: Callable[[], BinaryIO]
    mime_type: str = "text/plain"


@dataclass(frozen=True)
class IssueLink:
    link_type: str
    target_key: str
    outward: bool = True


@dataclass
class BugReport:
    """Snapshot of a report as handed over by the data access layer."""
    key: str
    description: Optional[str]
    created: datetime
    actions: ReportActions
    attachments: List[Attachment] = field(default_factory=list)
    confirmation_status: Optional[str] = None
    priority: Optional[str] = None
    status: str = "Open"
    resolution: Optional[str] = None
    links: List[IssueLink] = field(default_factory=list)
