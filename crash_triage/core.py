"""Crash triage entry points.

:class:`CrashTriage` wires the pipeline together for one report:

    report -> sources -> classified crashes -> decision -> side effects

Three entry points share it, each invoked independently by the scheduler:

- :meth:`CrashTriage.run` resolves known and modded crashes
- :meth:`CrashTriage.run_crash_info` uploads deobfuscated traces and
  summarizes new crashes in the description
- :meth:`CrashTriage.run_missing_crash` asks for a crash report when the
  description mentions a crash that is not attached
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .actions import TriageActionExecutor, TriageResult
from .classifier import CrashClassifierAdapter, Deobfuscator
from .collector import CrashSourceCollector
from .config import TriageConfig
from .crash_parser import CrashParser, CrashReportParser
from .decisions import NoAction, TriageDecision
from .deobfuscation import DeobfuscationArtifactWriter
from .engine import TriageGuards, decide_for_report
from .mapping_download import MappingDownloader
from .mappings import MappingDeobfuscator
from .missing_crash import decide_missing_crash, missing_crash_guard
from .models import BugReport, ClassifiedCrash, DeobfuscationJob

logger = logging.getLogger(__name__)


class CrashTriage:
    """Crash analysis and deduplication for bug reports."""

    def __init__(self, config: TriageConfig, parser: Optional[CrashParser] = None,
                 deobfuscator: Optional[Deobfuscator] = None):
        self.config = config
        self.parser = parser or CrashReportParser()
        if deobfuscator is None and config.mappings_dir is not None:
            downloader = MappingDownloader() if config.download_mappings else None
            deobfuscator = MappingDeobfuscator(config.mappings_dir, downloader)
        self.deobfuscator = deobfuscator

        self.collector = CrashSourceCollector(config.crash_extensions, config.max_attachment_bytes)
        # Decision paths classify without deobfuscation
        self.classifier = CrashClassifierAdapter(self.parser)
        self.deobfuscating_classifier = CrashClassifierAdapter(self.parser, deobfuscator)
        self.executor = TriageActionExecutor(
            config.duplicate_message, config.modded_message, config.missing_crash_message)
        self.writer = DeobfuscationArtifactWriter(self.collector, self.parser, deobfuscator)

    def classify_report(self, report: BugReport) -> List[ClassifiedCrash]:
        return self.classifier.classify_all(self.collector.collect(report))

    def analyze(self, report: BugReport, last_run: Optional[datetime] = None) -> TriageDecision:
        """Decision for ``report`` without touching it."""
        reason = TriageGuards.from_report(report).blocking_reason()
        if reason:
            logger.debug("%s: skipped, %s", report.key, reason)
            return NoAction(reason)
        crashes = self.classify_report(report)
        return decide_for_report(report, crashes, self.config.signature_rules, last_run)

    def run(self, report: BugReport, last_run: Optional[datetime] = None) -> TriageResult:
        """Resolve ``report`` as duplicate or modded when its crashes say so."""
        decision = self.analyze(report, last_run)
        return self.executor.execute(report, decision)

    def run_crash_info(self, report: BugReport, last_run: Optional[datetime] = None) -> TriageResult:
        crashes = self.deobfuscating_classifier.classify_all(self.collector.collect_attachments(report))
        return self.writer.run(report, crashes, last_run)

    def run_missing_crash(self, report: BugReport) -> TriageResult:
        reason = missing_crash_guard(report)
        if reason:
            return TriageResult.not_needed(NoAction(reason))
        decision = decide_missing_crash(report, self.classify_report(report))
        logger.info("%s: %s", report.key, decision)
        return self.executor.execute(report, decision)

    def deobfuscate_attachment(self, report: BugReport, attachment_name: str,
                               version: Optional[str] = None,
                               is_client: Optional[bool] = None) -> DeobfuscationJob:
        return self.writer.deobfuscate_attachment(report, attachment_name, version, is_client)
