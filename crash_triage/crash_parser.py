"""Structural parser for game crash reports and JVM fatal error logs.

The triage pipeline only talks to :class:`CrashParser`; :class:`CrashReportParser`
is the implementation used by default. It recognizes three formats:

- Minecraft crash reports (``---- Minecraft Crash Report ----``)
- JVM fatal error logs (``hs_err_pid*.log`` content)
- plain Java stack traces, reported with an unknown category
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import CrashCategory, ModdedConfidence, ParsedCrash


class CrashParser(ABC):
    """Black-box crash classifier."""

    @abstractmethod
    def parse(self, text: str) -> Optional[ParsedCrash]:
        """Return the structure of the crash in ``text``, or ``None`` if there is none."""


# ============================================================================
# FORMAT MARKERS
# ============================================================================

ENGINE_HEADER = re.compile(r'^-{4} Minecraft Crash Report -{4}\s*$', re.MULTILINE)
JVM_HEADER = re.compile(r'A fatal error has been detected by the Java Runtime Environment')
JVM_FRAME_MARKER = re.compile(r'^#\s*Problematic frame:\s*$', re.MULTILINE)
JVM_FRAME = re.compile(r'^#\s*\w+\s+\[([^\]]+)\]', re.MULTILINE)
JVM_ERROR_LINE = re.compile(r'^#\s+(\w+ \(0x[0-9a-fA-F]+\).*)$', re.MULTILINE)
JAVA_EXCEPTION_LINE = re.compile(
    r'^(?:Exception in thread "[^"]*" )?([\w$.]+(?:Exception|Error)(?::.*)?)$', re.MULTILINE)

DETAIL_LINE = re.compile(r'^\s*([A-Za-z][A-Za-z ]*?):\s*(.*?)\s*$')

# "Is Modded:" values written by the game, most specific first
MODDED_PREFIXES = [
    ("definitely", ModdedConfidence.DEFINITE),
    ("very likely", ModdedConfidence.LIKELY),
    ("probably not", ModdedConfidence.NO),
    ("unknown", ModdedConfidence.UNKNOWN),
]


def parse_modded(value: Optional[str]) -> ModdedConfidence:
    if not value:
        return ModdedConfidence.UNKNOWN
    lowered = value.strip().lower()
    for prefix, confidence in MODDED_PREFIXES:
        if lowered.startswith(prefix):
            return confidence
    return ModdedConfidence.UNKNOWN


class CrashReportParser(CrashParser):
    """Line based parser for the crash formats seen on the tracker."""

    def parse(self, text: str) -> Optional[ParsedCrash]:
        if not text:
            return None
        header = ENGINE_HEADER.search(text)
        if header:
            return self._parse_engine_report(text[header.end():])
        if JVM_HEADER.search(text):
            return self._parse_jvm_log(text)
        return self._parse_java_trace(text)

    def _parse_engine_report(self, body: str) -> Optional[ParsedCrash]:
        lines = body.splitlines()
        exception_lines = self._exception_block(lines)
        if not exception_lines:
            return None

        details = self._details(lines)
        version = details.get("minecraft version id") or details.get("minecraft version")
        crash_type = details.get("type", "")
        is_client = "dedicated server" not in crash_type.lower()

        return ParsedCrash(
            category=CrashCategory.ENGINE_CRASH,
            exception="\n".join(exception_lines),
            modded=parse_modded(details.get("is modded")),
            version=version or None,
            is_client=is_client,
        )

    @staticmethod
    def _exception_block(lines: List[str]) -> List[str]:
        """Lines of the exception following the ``Description:`` line."""
        start = None
        for index, line in enumerate(lines):
            if line.startswith("Description:"):
                start = index + 1
                break
        if start is None:
            return []

        while start < len(lines) and not lines[start].strip():
            start += 1

        block: List[str] = []
        for line in lines[start:]:
            if not line.strip():
                break
            block.append(line.rstrip())
        return block

    @staticmethod
    def _details(lines: List[str]) -> dict:
        details = {}
        for line in lines:
            match = DETAIL_LINE.match(line)
            if match:
                key = match.group(1).strip().lower()
                # First occurrence wins; nested sections repeat generic keys
                details.setdefault(key, match.group(2))
        return details

    @staticmethod
    def _parse_jvm_log(text: str) -> Optional[ParsedCrash]:
        frame = None
        marker = JVM_FRAME_MARKER.search(text)
        if marker:
            match = JVM_FRAME.search(text, marker.end())
            if match:
                frame = match.group(1).strip()
        if frame is None:
            return None

        error = JVM_ERROR_LINE.search(text)
        return ParsedCrash(
            category=CrashCategory.GENERIC_JVM,
            exception=error.group(1).strip() if error else "",
            problematic_frame=frame,
        )

    @staticmethod
    def _parse_java_trace(text: str) -> Optional[ParsedCrash]:
        lines = text.splitlines()
        for index, line in enumerate(lines):
            match = JAVA_EXCEPTION_LINE.match(line.strip())
            if not match:
                continue
            following = lines[index + 1] if index + 1 < len(lines) else ""
            if not following.strip().startswith("at "):
                continue
            block = [match.group(1)]
            for frame in lines[index + 1:]:
                if not frame.strip().startswith(("at ", "Caused by:", "...")):
                    break
                block.append(frame.rstrip())
            return ParsedCrash(category=CrashCategory.UNKNOWN, exception="\n".join(block))
        return None
