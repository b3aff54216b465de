"""Bug reports described as local JSON files, for dry runs.

Example::

    {
        "key": "MC-1234",
        "description": "The game crashed when I opened the world",
        "created": "2024-05-01T12:00:00+00:00",
        "confirmation_status": "Unconfirmed",
        "priority": null,
        "status": "Open",
        "attachments": [
            {"name": "crash-2024-05-01.txt", "path": "crash.txt",
             "created": "2024-05-01T12:01:00+00:00"}
        ]
    }

Attachment paths are relative to the JSON file.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

from .models import Attachment, BugReport, IssueLink, ReportActions


def parse_timestamp(value: str) -> datetime:
    """ISO 8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DryRunActions(ReportActions):
    """Records and prints mutations instead of applying them."""

    def __init__(self, key: str, echo: Callable[[str], None] = print):
        self.key = key
        self.echo = echo
        self.calls: List[Tuple[Any, ...]] = []

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        self.echo(f"[+] {self.key}: would {' '.join(str(c) for c in call)}")

    def add_comment(self, template: str, *params: str) -> None:
        self._record("comment", template, *params)

    def create_link(self, link_type: str, target_key: str) -> None:
        self._record("link", link_type, target_key)

    def resolve_as_duplicate(self) -> None:
        self._record("resolve", "Duplicate")

    def resolve_as_invalid(self) -> None:
        self._record("resolve", "Invalid")

    def resolve_as_awaiting_response(self) -> None:
        self._record("resolve", "Awaiting Response")

    def update_description(self, text: str) -> None:
        self._record("update description to", repr(text))

    def add_attachment(self, path: Path, on_uploaded: Callable[[], None]) -> None:
        self._record("attach", path.name)
        on_uploaded()


def _attachment(entry: dict, base_dir: Path) -> Attachment:
    path = base_dir / entry["path"]
    return Attachment(
        name=entry.get("name") or path.name,
        created=parse_timestamp(entry["created"]),
        open_stream=lambda: open(path, "rb"),
        mime_type=entry.get("mime_type", "text/plain"),
    )


def load_report(path: Union[str, Path], actions: Optional[ReportActions] = None) -> BugReport:
    """Build a :class:`BugReport` from a JSON description.

    Raises ValueError (or KeyError for missing fields) when the file is malformed.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    key = data.get("key", path.stem)
    return BugReport(
        key=key,
        description=data.get("description"),
        created=parse_timestamp(data["created"]),
        actions=actions or DryRunActions(key),
        attachments=[_attachment(entry, path.parent) for entry in data.get("attachments", [])],
        confirmation_status=data.get("confirmation_status"),
        priority=data.get("priority"),
        status=data.get("status", "Open"),
        resolution=data.get("resolution"),
        links=[IssueLink(link["type"], link["key"]) for link in data.get("links", [])],
    )
