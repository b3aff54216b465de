"""Tests for fetching mapping files."""
from unittest.mock import MagicMock

import pytest
import requests

from crash_triage.mapping_download import MappingDownloader, MappingDownloadError
from crash_triage.mappings import MappingDeobfuscator

from crash_samples import OBFUSCATED_CRASH, OBFUSCATED_MAPPINGS

MANIFEST_URL = "https://example.invalid/version_manifest_v2.json"
VERSION_URL = "https://example.invalid/1.20.1.json"
CLIENT_URL = "https://example.invalid/client.txt"

RESPONSES = {
    MANIFEST_URL: {"versions": [{"id": "1.20.1", "url": VERSION_URL}, {"id": "1.12.2", "url": "x"}]},
    VERSION_URL: {"downloads": {"client_mappings": {"url": CLIENT_URL}}},
    CLIENT_URL: OBFUSCATED_MAPPINGS.encode("utf-8"),
}


def response(payload):
    resp = MagicMock()
    if isinstance(payload, bytes):
        resp.content = payload
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


def fake_session(responses=None):
    responses = RESPONSES if responses is None else responses
    session = MagicMock()
    session.get.side_effect = lambda url, timeout: response(responses[url])
    return session


def test_download_client_mappings(tmp_path):
    session = fake_session()
    target = tmp_path / "mappings" / "1.20.1-client.txt"
    downloaded = MappingDownloader(session, MANIFEST_URL).download("1.20.1", True, target)
    assert downloaded
    assert target.read_text(encoding="utf-8") == OBFUSCATED_MAPPINGS
    assert [call.args[0] for call in session.get.call_args_list] == [MANIFEST_URL, VERSION_URL, CLIENT_URL]


def test_unknown_version(tmp_path):
    downloader = MappingDownloader(fake_session(), MANIFEST_URL)
    assert not downloader.download("b1.7.3", True, tmp_path / "b1.7.3-client.txt")
    assert not (tmp_path / "b1.7.3-client.txt").exists()


def test_version_without_published_mappings(tmp_path):
    downloader = MappingDownloader(fake_session(), MANIFEST_URL)
    assert downloader.mappings_url("1.20.1", False) is None
    assert not downloader.download("1.20.1", False, tmp_path / "1.20.1-server.txt")


def test_manifest_is_fetched_once():
    session = fake_session()
    downloader = MappingDownloader(session, MANIFEST_URL)
    downloader.version_url("1.20.1")
    downloader.version_url("1.12.2")
    assert session.get.call_count == 1


def test_http_error_is_wrapped(tmp_path):
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("connection refused")
    with pytest.raises(MappingDownloadError, match="connection refused"):
        MappingDownloader(session, MANIFEST_URL).download("1.20.1", True, tmp_path / "m.txt")


def test_bad_status_is_wrapped():
    session = MagicMock()
    session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
    with pytest.raises(MappingDownloadError, match="404"):
        MappingDownloader(session, MANIFEST_URL).version_url("1.20.1")


def test_invalid_manifest_is_wrapped():
    session = fake_session({MANIFEST_URL: b"<html>"})
    with pytest.raises(MappingDownloadError, match="Invalid JSON"):
        MappingDownloader(session, MANIFEST_URL).version_url("1.20.1")


def test_deobfuscator_downloads_missing_mappings(tmp_path):
    deobfuscator = MappingDeobfuscator(tmp_path, MappingDownloader(fake_session(), MANIFEST_URL))
    text = deobfuscator(OBFUSCATED_CRASH, "1.20.1", True)
    assert "net.minecraft.world.entity.Entity.tick" in text
    assert (tmp_path / "1.20.1-client.txt").is_file()


def test_deobfuscator_prefers_local_file(tmp_path):
    (tmp_path / "1.20.1-client.txt").write_text(OBFUSCATED_MAPPINGS, encoding="utf-8")
    session = fake_session()
    deobfuscator = MappingDeobfuscator(tmp_path, MappingDownloader(session, MANIFEST_URL))
    assert deobfuscator(OBFUSCATED_CRASH, "1.20.1", True) is not None
    session.get.assert_not_called()


def test_deobfuscator_never_downloads_outside_directory(tmp_path):
    session = fake_session()
    deobfuscator = MappingDeobfuscator(tmp_path / "mappings", MappingDownloader(session, MANIFEST_URL))
    assert deobfuscator(OBFUSCATED_CRASH, "../1.20.1", True) is None
    session.get.assert_not_called()
