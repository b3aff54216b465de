"""Normalizes parser output into :class:`ClassifiedCrash` records."""
from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List, Optional

from .crash_parser import CrashParser
from .models import CrashCategory, ClassifiedCrash, CrashSource, ParsedCrash

logger = logging.getLogger(__name__)

# (crash text, engine version, is client) -> deobfuscated text
Deobfuscator = Callable[[str, str, bool], Optional[str]]

WHITESPACE = re.compile(r'\s+')
FRAME_OFFSET = re.compile(r'\+0x[0-9a-fA-F]+$')


def normalize_signature(value: str) -> str:
    return WHITESPACE.sub(" ", value).strip()


def jvm_signature(problematic_frame: str) -> str:
    """``ig75icd64.dll+0x1c82`` -> ``ig75icd64.dll``"""
    return FRAME_OFFSET.sub("", problematic_frame.strip())


class CrashClassifierAdapter:
    """Runs the crash parser over each source and keeps the actual crashes."""

    def __init__(self, parser: CrashParser, deobfuscator: Optional[Deobfuscator] = None):
        self.parser = parser
        self.deobfuscator = deobfuscator

    def classify(self, source: CrashSource) -> Optional[ClassifiedCrash]:
        try:
            parsed = self.parser.parse(source.text)
        except Exception as e:
            logger.warning("Could not parse %s: %s: %s", source.origin, type(e).__name__, e)
            return None
        if parsed is None:
            logger.debug("No crash found in %s", source.origin)
            return None

        if parsed.category is CrashCategory.GENERIC_JVM and parsed.problematic_frame:
            signature = jvm_signature(parsed.problematic_frame)
        else:
            signature = normalize_signature(parsed.exception)

        crash = ClassifiedCrash(
            source=source,
            category=parsed.category,
            signature=signature,
            modded_confidence=parsed.modded,
            deobfuscated=self._deobfuscate(source, parsed),
            exception=parsed.exception,
            version=parsed.version,
            is_client=parsed.is_client,
        )
        logger.debug("Classified %s as %s (modded: %s)", source.origin,
                     crash.category.name, crash.modded_confidence.name)
        return crash

    def classify_all(self, sources: Iterable[CrashSource]) -> List[ClassifiedCrash]:
        crashes = []
        for source in sources:
            crash = self.classify(source)
            if crash is not None:
                crashes.append(crash)
        return crashes

    def _deobfuscate(self, source: CrashSource, parsed: ParsedCrash) -> Optional[str]:
        if self.deobfuscator is None:
            return None
        if parsed.category is not CrashCategory.ENGINE_CRASH or not parsed.version:
            return None
        is_client = True if parsed.is_client is None else parsed.is_client
        try:
            return self.deobfuscator(source.text, parsed.version, is_client)
        except Exception as e:
            logger.warning("Deobfuscation of %s failed: %s: %s", source.origin, type(e).__name__, e)
            return None
