"""Gathers the texts of a report that may contain crash dumps."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .bounded_reader import read_text
from .models import Attachment, BugReport, CrashSource, SourceOrigin

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


def file_extension(file_name: str) -> str:
    """Literal suffix after the last dot (the whole name when there is none)."""
    return file_name[file_name.rfind(".") + 1:]


class CrashSourceCollector:
    """Builds :class:`CrashSource` records from a report.

    Only attachments with an allow-listed extension are read, each through a
    byte cap. The description is always included as the last source.
    """

    def __init__(self, crash_extensions: Iterable[str],
                 max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES):
        self.crash_extensions = list(crash_extensions)
        self.max_attachment_bytes = max_attachment_bytes

    def is_crash_attachment(self, file_name: str) -> bool:
        return file_extension(file_name) in self.crash_extensions

    def read_attachment(self, attachment: Attachment) -> Optional[CrashSource]:
        """Read one attachment, or ``None`` when it cannot be read safely."""
        try:
            text = read_text(attachment.open_stream(), self.max_attachment_bytes)
        except Exception as e:
            logger.warning("Skipping attachment %r: %s: %s", attachment.name, type(e).__name__, e)
            return None
        return CrashSource(SourceOrigin.attachment(attachment.name), text, attachment.created)

    def collect_attachments(self, report: BugReport) -> List[CrashSource]:
        sources: List[CrashSource] = []
        for attachment in report.attachments:
            if not self.is_crash_attachment(attachment.name):
                continue
            source = self.read_attachment(attachment)
            if source is not None:
                sources.append(source)
        return sources

    def collect(self, report: BugReport) -> List[CrashSource]:
        sources = self.collect_attachments(report)
        sources.append(CrashSource(SourceOrigin.description(), report.description or "", report.created))
        logger.debug("%s: collected %d crash source(s)", report.key, len(sources))
        return sources
