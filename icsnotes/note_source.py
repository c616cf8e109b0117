"""Locally-owned calendar entries read from a folder of markdown notes.

Notes describe events in YAML frontmatter::

    ---
    title: Dentist
    startTime: 2024-03-04T09:30:00
    endTime: 2024-03-04T10:00:00
    description: Bring the forms
    ---

Notes promoted from a feed occurrence also carry an override marker
(``icsId``, or ``icsBaseEventId`` with ``icsInstanceId``).
"""

import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, NamedTuple, Optional, Union

import yaml
from pydantic import ValidationError

from .interval import Instant, is_date_instant, parse_instant
from .models import CalendarEntry
from .override_index import OverrideIndex, identity_from_marker

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"
NOTE_SUFFIX = ".md"


class NoteScan(NamedTuple):
    """Everything a single pass over the notes folder produces."""

    entries: list[CalendarEntry]
    override_index: OverrideIndex


def read_frontmatter(text: str) -> Optional[dict[str, Any]]:
    """Extract the YAML frontmatter mapping from note text.

    Returns:
        Frontmatter mapping, or None when the note has none

    Raises:
        yaml.YAMLError: If the frontmatter block is not valid YAML
    """
    lines = text.lstrip("\ufeff").splitlines()
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return None

    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == FRONTMATTER_DELIMITER:
            data = yaml.safe_load("\n".join(lines[1:index]))
            return data if isinstance(data, dict) else None
    return None


def _coerce_instant(value: Any, all_day: bool) -> Instant:
    if isinstance(value, (str, date, datetime)):
        instant = parse_instant(value)
    else:
        raise ValueError(f"unsupported time value {value!r}")
    if all_day and not is_date_instant(instant):
        return instant.date()
    return instant


class LocalNoteSource:
    """Reads event notes and override markers from a notes folder."""

    def __init__(self, folder: Union[str, Path, None]):
        """Initialize the note source.

        Args:
            folder: Root of the calendar notes folder; None disables the source
        """
        self.folder = Path(folder).expanduser() if folder else None

    def load_entries(self) -> list[CalendarEntry]:
        """Return singleton entries for every note with a ``startTime``."""
        return self.scan().entries

    def load_override_index(self) -> OverrideIndex:
        """Return the identities of feed occurrences owned by notes."""
        return self.scan().override_index

    def scan(self) -> NoteScan:
        """Scan the folder once, collecting entries and override markers."""
        entries: list[CalendarEntry] = []
        markers: list[dict[str, Any]] = []

        for path, frontmatter in self._iter_frontmatter():
            if identity_from_marker(frontmatter) is not None:
                markers.append(frontmatter)
            if "startTime" not in frontmatter:
                continue
            entry = self._entry_from_frontmatter(path, frontmatter)
            if entry is not None:
                entries.append(entry)

        override_index = OverrideIndex.from_markers(markers)
        logger.debug(
            "Scanned notes folder %s: %d entries, %d overrides",
            self.folder,
            len(entries),
            len(override_index),
        )
        return NoteScan(entries, override_index)

    def _iter_frontmatter(self) -> Iterator[tuple[Path, dict[str, Any]]]:
        if self.folder is None:
            return
        if not self.folder.is_dir():
            logger.warning("Calendar notes folder %s not found", self.folder)
            return

        for path in sorted(self.folder.rglob(f"*{NOTE_SUFFIX}")):
            if not path.is_file():
                continue
            try:
                frontmatter = read_frontmatter(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read note %s: %s", path, e)
                continue
            except yaml.YAMLError as e:
                logger.warning("Invalid frontmatter in note %s: %s", path, e)
                continue
            if frontmatter:
                yield path, frontmatter

    def _entry_from_frontmatter(
        self, path: Path, frontmatter: dict[str, Any]
    ) -> Optional[CalendarEntry]:
        uid = path.relative_to(self.folder).as_posix()
        try:
            all_day = bool(frontmatter.get("allDay", False))
            start = _coerce_instant(frontmatter["startTime"], all_day)
            all_day = is_date_instant(start)

            end = None
            if frontmatter.get("endTime") is not None:
                end = _coerce_instant(frontmatter["endTime"], all_day)
                if all_day:
                    # endTime names the last included day
                    end = end + timedelta(days=1)

            title = frontmatter.get("title") or path.stem
            description = frontmatter.get("description")
            return CalendarEntry(
                uid=uid,
                title=str(title),
                description=str(description) if description is not None else None,
                start=start,
                end=end,
                all_day=all_day,
            )
        except (ValueError, OverflowError, ValidationError) as e:
            logger.warning("Skipping note %s with invalid event fields: %s", uid, e)
            return None
