"""Uploads deobfuscated crash traces and summarizes new crashes in the description.

Deobfuscated traces are written to a throw-away directory before upload. The
attachment name is derived from an attacker-controlled file name, so the
target path always goes through :func:`resolve_safe_child`.
"""
from __future__ import annotations

import logging
import re
import shutil
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .actions import TriageResult, run_steps
from .classifier import Deobfuscator
from .collector import CrashSourceCollector
from .crash_parser import CrashParser
from .decisions import NoAction
from .models import BugReport, ClassifiedCrash, CrashCategory, DeobfuscationJob
from .safe_path import resolve_safe_child

logger = logging.getLogger(__name__)

DEOBFUSCATED_SUFFIX = "deobfuscated.txt"
UPLOAD_DIR_PREFIX = "crash-triage-upload"


class DeobfuscationRequestError(Exception):
    """An explicitly requested deobfuscation could not be carried out."""


def deobfuscated_name(name: str) -> str:
    """``crash.txt`` -> ``crash-deobfuscated.txt``, path separators removed."""
    dot = name.rfind(".")
    stem = name[:dot] if dot >= 0 else name
    stem = stem.replace("\\", "").replace("/", "")
    return f"{stem}-{DEOBFUSCATED_SUFFIX}"


class UploadSandbox:
    """Temporary directory holding one file until its upload is done."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.owned = True

    def remove(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)

    def hand_over(self) -> None:
        """The upload callback is now responsible for removing the directory."""
        self.owned = False


@contextmanager
def upload_sandbox(prefix: str = UPLOAD_DIR_PREFIX) -> Iterator[UploadSandbox]:
    """Fresh temporary directory, removed on exit unless it was handed over."""
    sandbox = UploadSandbox(Path(tempfile.mkdtemp(prefix=prefix)))
    try:
        yield sandbox
    finally:
        if sandbox.owned:
            sandbox.remove()


def crash_block(name: str, crash: ClassifiedCrash) -> str:
    """Formatted summary of one crash for the report description."""
    first_line = crash.exception.split("\n")[0]
    if crash.deobfuscated is not None:
        deobfuscated = f"Deobfuscated: {crash.deobfuscated}\n"
    else:
        deobfuscated = "\n"
    return (
        f"{{code:title=({crash.version or 'unknown'}) [^{name}]}}\n\n"
        f"Description: {first_line}\n\n"
        f"Exception: {crash.exception}\n\n"
        f"{deobfuscated}"
        "{code}\n"
    )


def has_crash_block(description: str, name: str) -> bool:
    pattern = r"\{code[^\n]*\[\^" + re.escape(name) + r"]}[\s\S]*?\{code}"
    return re.search(pattern, description) is not None


class DeobfuscationArtifactWriter:
    """Handles crash reports that were attached since the last run.

    Args:
        collector: Used to read attachments for on-demand deobfuscation
        parser: Used to detect version and client/server for on-demand requests
        deobfuscator: Produces the deobfuscated trace for on-demand requests
    """

    def __init__(self, collector: Optional[CrashSourceCollector] = None,
                 parser: Optional[CrashParser] = None,
                 deobfuscator: Optional[Deobfuscator] = None):
        self.collector = collector
        self.parser = parser
        self.deobfuscator = deobfuscator

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @staticmethod
    def new_engine_crashes(crashes: Sequence[ClassifiedCrash],
                           last_run: Optional[datetime] = None) -> List[ClassifiedCrash]:
        return [
            c for c in crashes
            if c.source.origin.is_attachment
            and c.category is CrashCategory.ENGINE_CRASH
            and (last_run is None or c.source.created_at > last_run)
        ]

    @staticmethod
    def pending_jobs(report: BugReport, crashes: Sequence[ClassifiedCrash]) -> List[DeobfuscationJob]:
        existing = {a.name for a in report.attachments}
        if any(name.endswith(DEOBFUSCATED_SUFFIX) for name in existing):
            return []

        jobs: List[DeobfuscationJob] = []
        planned = set()
        for crash in crashes:
            if crash.deobfuscated is None:
                continue
            target = deobfuscated_name(crash.source.origin.name)
            if target in existing or target in planned:
                continue
            planned.add(target)
            jobs.append(DeobfuscationJob(crash.source.origin.name, crash.deobfuscated))
        return jobs

    @staticmethod
    def describe_crashes(description: Optional[str], crashes: Sequence[ClassifiedCrash]) -> Optional[str]:
        """Description with a block for every crash not described yet, or ``None``."""
        updated = description or ""
        changed = False
        for crash in crashes:
            name = crash.source.origin.name
            if name.endswith(DEOBFUSCATED_SUFFIX) or has_crash_block(updated, name):
                continue
            updated = updated + "\n\n" + crash_block(name, crash)
            changed = True
        return updated if changed else None

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def upload(self, report: BugReport, job: DeobfuscationJob) -> bool:
        """Write ``job`` to a sandboxed file and attach it to ``report``.

        Returns False when the file name escapes the sandbox; nothing is
        written in that case. Once ``add_attachment`` accepted the file, the
        directory is removed by the upload callback only.
        """
        file_name = deobfuscated_name(job.source_name)
        with upload_sandbox() as sandbox:
            target = resolve_safe_child(sandbox.directory, file_name)
            if target is None:
                logger.warning("%s: refusing to write %r outside of the upload directory",
                               report.key, file_name)
                return False
            target.write_text(job.content, encoding="utf-8")
            report.actions.add_attachment(target, sandbox.remove)
            sandbox.hand_over()
            logger.info("%s: uploaded %s", report.key, file_name)
            return True

    def run(self, report: BugReport, crashes: Sequence[ClassifiedCrash],
            last_run: Optional[datetime] = None) -> TriageResult:
        new_crashes = self.new_engine_crashes(crashes, last_run)
        if not new_crashes:
            return TriageResult.not_needed(NoAction("no crash added since last run"))

        steps: List[Tuple[str, Callable[[], None]]] = []
        for job in self.pending_jobs(report, new_crashes):
            steps.append((f"upload of {deobfuscated_name(job.source_name)}",
                          lambda job=job: self.upload(report, job)))

        description = self.describe_crashes(report.description, new_crashes)
        if description is not None:
            steps.append(("description update", lambda: report.actions.update_description(description)))

        if not steps:
            return TriageResult.not_needed(NoAction("crashes are already documented"))
        return TriageResult.from_errors(run_steps(report, steps))

    # ------------------------------------------------------------------
    # On request
    # ------------------------------------------------------------------

    def deobfuscate_attachment(self, report: BugReport, attachment_name: str,
                               version: Optional[str] = None,
                               is_client: Optional[bool] = None) -> DeobfuscationJob:
        """Deobfuscate one attachment on request and upload the result.

        Version and client/server type are detected from the crash report
        when not given.
        """
        if self.collector is None or self.parser is None or self.deobfuscator is None:
            raise DeobfuscationRequestError("Deobfuscation is not configured")

        attachment = next((a for a in report.attachments if a.name == attachment_name), None)
        if attachment is None:
            raise DeobfuscationRequestError(f"No attachment named '{attachment_name}'")

        target = deobfuscated_name(attachment.name)
        if any(a.name == target for a in report.attachments):
            raise DeobfuscationRequestError(f"Attachment '{target}' already exists")

        source = self.collector.read_attachment(attachment)
        if source is None:
            raise DeobfuscationRequestError(f"Attachment '{attachment_name}' could not be read")

        if version is None or is_client is None:
            parsed = self.parser.parse(source.text)
            if parsed is None or parsed.category is not CrashCategory.ENGINE_CRASH:
                raise DeobfuscationRequestError(
                    "Version (and crash report type) could not be detected; must be specified manually")
            if version is None:
                version = parsed.version
                if version is None:
                    raise DeobfuscationRequestError(
                        "Version could not be detected; must be specified manually")
            if is_client is None:
                is_client = True if parsed.is_client is None else parsed.is_client

        try:
            content = self.deobfuscator(source.text, version, is_client)
        except Exception as e:
            raise DeobfuscationRequestError(
                f"Deobfuscation of attachment '{attachment_name}' failed: {e}") from e
        if content is None:
            raise DeobfuscationRequestError(f"No mappings available for version '{version}'")

        job = DeobfuscationJob(attachment.name, content)
        try:
            uploaded = self.upload(report, job)
        except Exception as e:
            raise DeobfuscationRequestError(f"Upload of '{target}' failed: {e}") from e
        if not uploaded:
            raise DeobfuscationRequestError(f"Refusing to write '{target}'")
        return job
