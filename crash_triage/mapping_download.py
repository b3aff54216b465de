"""
Mapping Downloader

Fetches the ProGuard mapping files the game publishes for each release so
that crash traces can be deobfuscated without a pre-filled mappings directory.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

VERSION_MANIFEST_URL = "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"
DEFAULT_TIMEOUT = 30


class MappingDownloadError(Exception):
    """Mappings could not be fetched from the download servers."""


class MappingDownloader:
    """Looks up and downloads mapping files through the version manifest.

    Args:
        session: HTTP session to use. Defaults to a new ``requests.Session``.
        manifest_url: Version manifest listing the metadata URL of every version
        timeout: Seconds to wait for each request
    """

    def __init__(self, session: Optional[requests.Session] = None,
                 manifest_url: str = VERSION_MANIFEST_URL, timeout: int = DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.manifest_url = manifest_url
        self.timeout = timeout
        self._manifest: Optional[Dict[str, Any]] = None

    def _get(self, url: str) -> requests.Response:
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise MappingDownloadError(f"Download of {url} failed: {type(e).__name__}: {e}") from e
        return resp

    def _get_json(self, url: str) -> Dict[str, Any]:
        resp = self._get(url)
        try:
            return resp.json()
        except ValueError as e:
            raise MappingDownloadError(f"Invalid JSON from {url}: {e}") from e

    def version_url(self, version: str) -> Optional[str]:
        """Metadata URL of ``version``, or ``None`` for versions the manifest does not list."""
        if self._manifest is None:
            self._manifest = self._get_json(self.manifest_url)
        for entry in self._manifest.get("versions", []):
            if entry.get("id") == version:
                return entry.get("url")
        return None

    def mappings_url(self, version: str, is_client: bool) -> Optional[str]:
        url = self.version_url(version)
        if url is None:
            return None
        downloads = self._get_json(url).get("downloads", {})
        key = "client_mappings" if is_client else "server_mappings"
        return downloads.get(key, {}).get("url")

    def download(self, version: str, is_client: bool, target: Path) -> bool:
        """Save the mappings of ``version`` to ``target``.

        Returns False when no mappings are published for the version.
        """
        url = self.mappings_url(version, is_client)
        if url is None:
            logger.debug("No published mappings for %s", version)
            return False

        resp = self._get(url)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(resp.content)
        logger.info("Downloaded %.2f MB of mappings for %s to %s",
                    len(resp.content) / 1024 / 1024, version, target)
        return True
