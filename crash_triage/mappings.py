"""Deobfuscation of crash traces with ProGuard mapping files.

Mapping files are looked up as ``<version>-client.txt`` or
``<version>-server.txt`` in a local directory. Missing files are fetched
with a :class:`~crash_triage.mapping_download.MappingDownloader` when one
is given.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .mapping_download import MappingDownloader
from .safe_path import resolve_safe_child

logger = logging.getLogger(__name__)

CLASS_LINE = re.compile(r'^(\S+) -> (\S+):$')
METHOD_LINE = re.compile(r'^\s+(?:\d+:\d+:)?\S+ ([\w$<>]+)\(.*\)(?::\d+(?::\d+)?)? -> ([\w$<>]+)$')
FRAME = re.compile(r'(\bat\s+)([\w$.]+)\.([\w$<>]+)\(')
EXCEPTION_CLASS = re.compile(r'^(\s*(?:Caused by: )?)([\w$.]+)(?=:|\s*$)', re.MULTILINE)


class ProguardMappings:
    """Obfuscated -> original names of one mapping file."""

    def __init__(self):
        self.classes: Dict[str, str] = {}
        self.methods: Dict[str, Dict[str, str]] = {}

    @classmethod
    def parse(cls, lines: Iterable[str]) -> "ProguardMappings":
        mappings = cls()
        current: Optional[str] = None
        for raw in lines:
            line = raw.rstrip("\n")
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            match = CLASS_LINE.match(line)
            if match:
                original, obfuscated = match.groups()
                mappings.classes[obfuscated] = original
                current = obfuscated
                continue
            match = METHOD_LINE.match(line)
            if match and current is not None:
                original, obfuscated = match.groups()
                # Overloads share the obfuscated name; keep the first
                mappings.methods.setdefault(current, {}).setdefault(obfuscated, original)
        return mappings

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ProguardMappings":
        with open(path, "r", encoding="utf-8") as f:
            return cls.parse(f)

    def deobfuscate(self, text: str) -> str:
        def frame(match: re.Match) -> str:
            prefix, obf_class, obf_method = match.groups()
            method = self.methods.get(obf_class, {}).get(obf_method, obf_method)
            return f"{prefix}{self.classes.get(obf_class, obf_class)}.{method}("

        def exception(match: re.Match) -> str:
            prefix, name = match.groups()
            return prefix + self.classes.get(name, name)

        return EXCEPTION_CLASS.sub(exception, FRAME.sub(frame, text))


class MappingDeobfuscator:
    """Deobfuscator hook backed by a directory of mapping files."""

    def __init__(self, directory: Union[str, Path], downloader: Optional[MappingDownloader] = None):
        self.directory = Path(directory)
        self.downloader = downloader
        self._cache: Dict[Path, ProguardMappings] = {}

    def mapping_path(self, version: str, is_client: bool) -> Optional[Path]:
        """Mapping file for a version; ``None`` if the version string escapes the directory."""
        side = "client" if is_client else "server"
        return resolve_safe_child(self.directory, f"{version}-{side}.txt")

    def _download(self, version: str, is_client: bool, path: Path) -> bool:
        if self.downloader is None:
            return False
        return self.downloader.download(version, is_client, path)

    def __call__(self, text: str, version: str, is_client: bool) -> Optional[str]:
        path = self.mapping_path(version, is_client)
        if path is None:
            logger.warning("Ignoring suspicious version string %r", version)
            return None
        if path not in self._cache:
            if not path.is_file() and not self._download(version, is_client, path):
                logger.debug("No mappings for %s at %s", version, path)
                return None
            self._cache[path] = ProguardMappings.load(path)
        return self._cache[path].deobfuscate(text)
