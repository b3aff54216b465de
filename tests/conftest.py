"""Shared fakes for the crash triage tests."""
import io
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crash_triage.crash_parser import CrashParser
from crash_triage.models import (
    Attachment,
    BugReport,
    CrashCategory,
    CrashSignatureRule,
    ModdedConfidence,
    ParsedCrash,
    ReportActions,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
LAST_WEEK = NOW - timedelta(days=7)


class RecordingActions(ReportActions):
    """Records every mutation; methods named in ``fail_on`` raise instead.

    With ``defer_uploads`` attachments are queued like a tracker client that
    uploads later; :meth:`finish_uploads` performs them.
    """

    def __init__(self, fail_on=(), defer_uploads=False):
        self.calls: List[tuple] = []
        self.fail_on = set(fail_on)
        self.defer_uploads = defer_uploads
        self.pending: List[tuple] = []
        self.uploaded: Dict[str, str] = {}
        self.upload_dirs: List[Path] = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def add_comment(self, template, *params):
        self._call("add_comment", template, *params)

    def create_link(self, link_type, target_key):
        self._call("create_link", link_type, target_key)

    def resolve_as_duplicate(self):
        self._call("resolve_as_duplicate")

    def resolve_as_invalid(self):
        self._call("resolve_as_invalid")

    def resolve_as_awaiting_response(self):
        self._call("resolve_as_awaiting_response")

    def update_description(self, text):
        self._call("update_description", text)

    def add_attachment(self, path, on_uploaded):
        self.upload_dirs.append(path.parent)
        self._call("add_attachment", path.name)
        if self.defer_uploads:
            self.pending.append((path, on_uploaded))
            return
        self._upload(path, on_uploaded)

    def _upload(self, path, on_uploaded):
        self.uploaded[path.name] = path.read_text(encoding="utf-8")
        on_uploaded()

    def finish_uploads(self):
        pending, self.pending = self.pending, []
        for path, on_uploaded in pending:
            self._upload(path, on_uploaded)


def engine_crash(exception: str, modded: ModdedConfidence = ModdedConfidence.NO,
                 version: str = "1.14.4") -> ParsedCrash:
    return ParsedCrash(CrashCategory.ENGINE_CRASH, exception, modded, version, True)


FAKE_CRASHES: Dict[str, ParsedCrash] = {
    "PIXEL_FORMAT_CRASH": engine_crash("org.lwjgl.LWJGLException: Pixel format not accelerated"),
    "DRIVER_NO_OPENGL": engine_crash(
        "java.lang.IllegalStateException: GLFW error 65542: "
        "WGL: The driver does not appear to support OpenGL"),
    "EXAMPLE_CRASH": engine_crash("java.lang.NullPointerException: Exception ticking world"),
    "DEFINITELY_MODDED_SERVER_CRASH": engine_crash(
        "java.util.concurrent.ExecutionException: java.lang.RuntimeException: "
        "We are asking a region for a chunk out of bound",
        ModdedConfidence.DEFINITE),
    "LIKELY_MODDED_CRASH": engine_crash("java.lang.NoSuchFieldError: DO_DAYLIGHT_CYCLE",
                                        ModdedConfidence.LIKELY),
    "UNKNOWN_MODDED_CRASH": engine_crash("java.lang.RuntimeException: chunk out of bound",
                                         ModdedConfidence.UNKNOWN),
    "JAVA_DRIVER_CRASH": ParsedCrash(CrashCategory.GENERIC_JVM,
                                     "EXCEPTION_ACCESS_VIOLATION (0xc0000005)",
                                     problematic_frame="ig75icd64.dll+0x1c82"),
    "PLAIN_STACK_TRACE": ParsedCrash(CrashCategory.UNKNOWN,
                                     "java.lang.IllegalStateException: broken"),
    "MODDED_STACK_TRACE": ParsedCrash(CrashCategory.UNKNOWN,
                                      "java.lang.IllegalStateException: mixin",
                                      ModdedConfidence.DEFINITE),
}


class FakeCrashParser(CrashParser):
    """Returns a fixed result for texts that consist of a known token."""

    def __init__(self, results: Optional[Dict[str, ParsedCrash]] = None):
        self.results = FAKE_CRASHES if results is None else results
        self.parsed: List[str] = []

    def parse(self, text):
        self.parsed.append(text)
        return self.results.get(text.strip())


RULES = [
    CrashSignatureRule("minecraft", "Pixel format not accelerated", "MC-297"),
    CrashSignatureRule("minecraft", "WGL: The driver does not appear to support OpenGL", "MC-128302"),
    CrashSignatureRule("java", r"ig[0-9]{1,2}icd[0-9]{2}\.dll", "MC-32606"),
]


def attachment(name: str, content, created: datetime = NOW) -> Attachment:
    data = content.encode("utf-8") if isinstance(content, str) else content
    return Attachment(name, created, lambda: io.BytesIO(data))


def make_report(description: Optional[str] = "", attachments=(), actions=None,
                created: datetime = NOW, **fields) -> BugReport:
    return BugReport(
        key="MC-1000",
        description=description,
        created=created,
        actions=actions if actions is not None else RecordingActions(),
        attachments=list(attachments),
        **fields,
    )


@pytest.fixture
def actions():
    return RecordingActions()


@pytest.fixture
def fake_parser():
    return FakeCrashParser()
