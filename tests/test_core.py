"""End-to-end tests for the crash triage entry points."""
import pytest

from crash_triage.actions import ResultStatus
from crash_triage.config import TriageConfig
from crash_triage.core import CrashTriage
from crash_triage.decisions import NoAction, RequestMoreInfo, ResolveDuplicate, ResolveInvalidModded

from conftest import LAST_WEEK, NOW, RULES, YESTERDAY, RecordingActions, attachment, make_report
from crash_samples import (
    EXAMPLE_CRASH,
    EXAMPLE_CRASH_2,
    JAVA_CRASH,
    MODDED_CRASH,
    OBFUSCATED_CRASH,
    OBFUSCATED_MAPPINGS,
    SERVER_MODDED_CRASH,
)


def make_config(**overrides):
    settings = dict(crash_extensions=["txt", "log"], signature_rules=list(RULES))
    settings.update(overrides)
    return TriageConfig(**settings)


@pytest.fixture
def triage():
    return CrashTriage(make_config())


# ============================================================================
# Duplicate / modded resolution
# ============================================================================

def test_known_crash_in_attachment(triage, actions):
    report = make_report("It crashed", [attachment("crash.txt", EXAMPLE_CRASH)], actions)
    result = triage.run(report)
    assert result.status is ResultStatus.APPLIED
    assert result.decision == ResolveDuplicate("MC-297", NOW)
    assert actions.calls == [
        ("create_link", "Duplicate", "MC-297"),
        ("add_comment", "duplicate-tech", "MC-297"),
        ("resolve_as_duplicate",),
    ]


def test_known_crash_in_description(triage, actions):
    report = make_report(EXAMPLE_CRASH_2, actions=actions)
    result = triage.run(report)
    assert result.decision == ResolveDuplicate("MC-128302", NOW)


def test_known_jvm_crash(triage, actions):
    report = make_report("", [attachment("hs_err_pid1.log", JAVA_CRASH)], actions)
    assert triage.run(report).decision.ticket_id == "MC-32606"


def test_modded_crash(triage, actions):
    report = make_report("", [attachment("crash.txt", MODDED_CRASH)], actions)
    result = triage.run(report)
    assert isinstance(result.decision, ResolveInvalidModded)
    assert actions.names() == ["add_comment", "resolve_as_invalid"]


def test_modded_and_unmodded_crashes(triage, actions):
    report = make_report("", [
        attachment("modded.txt", SERVER_MODDED_CRASH),
        attachment("vanilla.txt", EXAMPLE_CRASH.replace("Pixel format", "Nothing")),
    ], actions)
    result = triage.run(report)
    assert result.status is ResultStatus.NOT_NEEDED
    assert actions.calls == []


def test_disallowed_extension_is_ignored(triage, actions):
    report = make_report("", [attachment("crash.png", EXAMPLE_CRASH)], actions)
    assert isinstance(triage.run(report).decision, NoAction)


def test_oversized_attachment_is_ignored(actions):
    triage = CrashTriage(make_config(max_attachment_bytes=64))
    report = make_report("", [attachment("crash.txt", EXAMPLE_CRASH)], actions)
    assert isinstance(triage.run(report).decision, NoAction)
    assert actions.calls == []


def test_guard_skips_crash_analysis(fake_parser, actions):
    triage = CrashTriage(make_config(), parser=fake_parser)
    report = make_report("PIXEL_FORMAT_CRASH", [attachment("crash.txt", "PIXEL_FORMAT_CRASH")],
                         actions, confirmation_status="Confirmed")
    result = triage.run(report)
    assert result.status is ResultStatus.NOT_NEEDED
    assert fake_parser.parsed == []
    assert actions.calls == []


def test_fake_parser_pipeline(fake_parser, actions):
    triage = CrashTriage(make_config(), parser=fake_parser)
    report = make_report("LIKELY_MODDED_CRASH", [attachment("crash.txt", "UNKNOWN_MODDED_CRASH")],
                         actions)
    assert isinstance(triage.run(report).decision, ResolveInvalidModded)
    assert fake_parser.parsed == ["UNKNOWN_MODDED_CRASH", "LIKELY_MODDED_CRASH"]


def test_last_run_without_new_crash(triage, actions):
    report = make_report("", [attachment("crash.txt", EXAMPLE_CRASH, LAST_WEEK)], actions,
                         created=LAST_WEEK)
    result = triage.run(report, YESTERDAY)
    assert isinstance(result.decision, NoAction)
    assert actions.calls == []


def test_failed_step_is_reported(triage):
    actions = RecordingActions(fail_on=["create_link"])
    report = make_report("", [attachment("crash.txt", EXAMPLE_CRASH)], actions)
    result = triage.run(report)
    assert result.failed
    assert actions.names() == ["create_link", "add_comment", "resolve_as_duplicate"]


# ============================================================================
# Crash info
# ============================================================================

def test_crash_info_uploads_deobfuscated_trace(tmp_path, actions):
    (tmp_path / "1.20.1-client.txt").write_text(OBFUSCATED_MAPPINGS, encoding="utf-8")
    triage = CrashTriage(make_config(mappings_dir=tmp_path))
    report = make_report("crash", [attachment("crash-1.txt", OBFUSCATED_CRASH)], actions)

    result = triage.run_crash_info(report, YESTERDAY)

    assert result.status is ResultStatus.APPLIED
    uploaded = actions.uploaded["crash-1-deobfuscated.txt"]
    assert "\tat net.minecraft.world.entity.Entity.tick(SourceFile:55)" in uploaded
    assert "update_description" in actions.names()


def test_crash_info_without_mappings_only_updates_description(triage, actions):
    report = make_report("crash", [attachment("crash.txt", OBFUSCATED_CRASH)], actions)
    result = triage.run_crash_info(report)
    assert result.status is ResultStatus.APPLIED
    assert actions.names() == ["update_description"]


def test_crash_info_ignores_description(triage, actions):
    report = make_report(EXAMPLE_CRASH, actions=actions)
    assert triage.run_crash_info(report).status is ResultStatus.NOT_NEEDED


class CountingDeobfuscator:
    def __init__(self):
        self.calls = 0

    def __call__(self, text, version, is_client):
        self.calls += 1
        return "deobfuscated"


def test_only_crash_info_deobfuscates():
    deobfuscator = CountingDeobfuscator()
    triage = CrashTriage(make_config(), deobfuscator=deobfuscator)

    triage.run(make_report("It crashed", [attachment("crash.txt", EXAMPLE_CRASH)]))
    triage.run_missing_crash(make_report("It crashed", [attachment("crash.txt", EXAMPLE_CRASH)]))
    assert deobfuscator.calls == 0

    actions = RecordingActions()
    triage.run_crash_info(make_report("", [attachment("crash.txt", EXAMPLE_CRASH)], actions))
    assert deobfuscator.calls == 1
    assert actions.uploaded == {"crash-deobfuscated.txt": "deobfuscated"}


def test_deobfuscate_on_request(tmp_path, actions):
    (tmp_path / "1.20.1-server.txt").write_text(OBFUSCATED_MAPPINGS, encoding="utf-8")
    triage = CrashTriage(make_config(mappings_dir=tmp_path))
    report = make_report("", [attachment("crash.txt", OBFUSCATED_CRASH)], actions)
    job = triage.deobfuscate_attachment(report, "crash.txt", is_client=False)
    assert job.source_name == "crash.txt"
    assert "net.minecraft.ReportedException" in actions.uploaded["crash-deobfuscated.txt"]


# ============================================================================
# Missing crash
# ============================================================================

def test_missing_crash_requests_more_info(triage, actions):
    report = make_report("My game crashes every time", actions=actions)
    result = triage.run_missing_crash(report)
    assert result.decision == RequestMoreInfo()
    assert actions.calls == [("resolve_as_awaiting_response",), ("add_comment", "include-crash")]


def test_missing_crash_with_attached_crash(triage, actions):
    report = make_report("My game crashes", [attachment("crash.txt", EXAMPLE_CRASH)], actions)
    assert triage.run_missing_crash(report).status is ResultStatus.NOT_NEEDED
    assert actions.calls == []


def test_missing_crash_guard_skips_parsing(fake_parser, actions):
    triage = CrashTriage(make_config(), parser=fake_parser)
    report = make_report("crash", [attachment("crash.txt", "PIXEL_FORMAT_CRASH")], actions,
                         priority="Low")
    assert triage.run_missing_crash(report).status is ResultStatus.NOT_NEEDED
    assert fake_parser.parsed == []
