"""Override index and deduplication of feed occurrences.

A local note that carries an override marker in its frontmatter takes over an
occurrence from the feed. Two marker shapes exist:

- ``icsId: <seriesId>`` for a non-recurring entry
- ``icsBaseEventId: <seriesId>`` plus ``icsInstanceId: <instant>`` for one
  instance of a series

Both normalize into the same ``OverrideIdentity`` the reconciler assigns.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime
from typing import Any, Optional, TypeVar

from .interval import canonical_instance_id, parse_instant
from .models import OccurrenceIdentity

logger = logging.getLogger(__name__)

OverrideIdentity = OccurrenceIdentity

SINGLE_KEY = "icsId"
BASE_ID_KEY = "icsBaseEventId"
INSTANCE_ID_KEY = "icsInstanceId"

T = TypeVar("T")


def normalize_instance_id(value: Any) -> str:
    """Re-encode an instance id from a note as a canonical instance id.

    Accepts ISO-8601 and RFC 5545 basic text, plus the date/datetime values
    YAML produces for unquoted timestamps. Values that cannot be parsed are
    kept verbatim.
    """
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return canonical_instance_id(value)

    text = str(value).strip()
    if not text:
        return ""
    try:
        return canonical_instance_id(parse_instant(text))
    except (ValueError, OverflowError):
        logger.warning("Could not parse override instance id %r, keeping it verbatim", text)
        return text


def identity_from_marker(frontmatter: Mapping[str, Any]) -> Optional[OverrideIdentity]:
    """Build an override identity from a note's frontmatter.

    Returns:
        OverrideIdentity, or None when the note carries no override marker
    """
    base_id = frontmatter.get(BASE_ID_KEY)
    if base_id:
        return OverrideIdentity(
            str(base_id).strip(), normalize_instance_id(frontmatter.get(INSTANCE_ID_KEY))
        )

    single_id = frontmatter.get(SINGLE_KEY)
    if single_id:
        return OverrideIdentity(str(single_id).strip(), "")

    return None


class OverrideIndex:
    """Immutable set of identities owned by local notes."""

    __slots__ = ("_identities",)

    def __init__(self, identities: Iterable[OverrideIdentity] = ()):
        self._identities = frozenset(OverrideIdentity(*identity) for identity in identities)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "OverrideIndex":
        """Build an index from raw ``(series_id, instance_id)`` pairs.

        Instance ids are normalized the same way note markers are.
        """
        return cls(
            OverrideIdentity(series_id, normalize_instance_id(instance_id))
            for series_id, instance_id in pairs
        )

    @classmethod
    def from_markers(cls, markers: Iterable[Mapping[str, Any]]) -> "OverrideIndex":
        """Build an index from the frontmatter of many notes."""
        identities = []
        for frontmatter in markers:
            identity = identity_from_marker(frontmatter)
            if identity is not None:
                identities.append(identity)
        return cls(identities)

    def __contains__(self, identity: object) -> bool:
        return identity in self._identities

    def __iter__(self) -> Iterator[OverrideIdentity]:
        return iter(self._identities)

    def __len__(self) -> int:
        return len(self._identities)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OverrideIndex):
            return NotImplemented
        return self._identities == other._identities

    def __hash__(self) -> int:
        return hash(self._identities)

    def __repr__(self) -> str:
        return f"OverrideIndex({len(self._identities)} identities)"


def filter_overrides(occurrences: Iterable[T], override_index: OverrideIndex) -> list[T]:
    """Drop every occurrence whose identity is owned by a local note.

    Pure and order-preserving; applying it twice gives the same result.

    Args:
        occurrences: Reconciled occurrences
        override_index: Identities owned by local notes

    Returns:
        Occurrences not present in the index, in input order
    """
    kept = [occ for occ in occurrences if occ.identity not in override_index]
    logger.debug("Override filter kept %d occurrences", len(kept))
    return kept
