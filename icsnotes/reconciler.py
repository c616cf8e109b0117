"""Occurrence reconciliation: merge expansion output and assign identities.

Identities must be stable across repeated calls because the override index
built from local notes is matched against them.
"""

import logging
from collections.abc import Iterable
from typing import Union

from .interval import canonical_instance_id
from .models import (
    ExceptionOccurrence,
    OccurrenceIdentity,
    SeriesOccurrence,
    SingletonOccurrence,
)

logger = logging.getLogger(__name__)

AnyOccurrence = Union[SingletonOccurrence, SeriesOccurrence, ExceptionOccurrence]


def assign_instance_id(occurrence: AnyOccurrence) -> AnyOccurrence:
    """Return the occurrence with its canonical ``instance_id`` set.

    Singletons always carry an empty instance id; series and exception
    occurrences are keyed by their recurrence instant.
    """
    if occurrence.kind == "singleton":
        instance_id = ""
    elif occurrence.kind in ("series", "exception"):
        instance_id = canonical_instance_id(occurrence.recurrence_id)
    else:
        raise ValueError(f"Unknown occurrence kind: {occurrence.kind!r}")

    if occurrence.instance_id == instance_id:
        return occurrence
    return occurrence.model_copy(update={"instance_id": instance_id})


class OccurrenceReconciler:
    """Merges synthesized occurrences, applied exceptions and singletons."""

    def reconcile(
        self,
        raw_occurrences: Iterable[SeriesOccurrence],
        exceptions_applied: Iterable[ExceptionOccurrence],
        singletons: Iterable[SingletonOccurrence],
    ) -> list[AnyOccurrence]:
        """Concatenate the inputs and assign canonical identities.

        Output order is raw occurrences, then exceptions, then singletons. A
        later occurrence repeating an identity already emitted is dropped, so
        ``(series_id, instance_id)`` is unique in the result.

        Args:
            raw_occurrences: Occurrences synthesized from series rules
            exceptions_applied: Exception entries routed in by the expander
            singletons: Non-recurring entries

        Returns:
            Reconciled occurrences
        """
        seen: set[OccurrenceIdentity] = set()
        reconciled: list[AnyOccurrence] = []
        dropped = 0

        for group in (raw_occurrences, exceptions_applied, singletons):
            for occurrence in group:
                with_id = assign_instance_id(occurrence)
                identity = with_id.identity
                if identity in seen:
                    dropped += 1
                    logger.debug("Dropping duplicate occurrence %s", identity)
                    continue
                seen.add(identity)
                reconciled.append(with_id)

        if dropped:
            logger.debug("Removed %d duplicate occurrences during reconciliation", dropped)
        return reconciled


def reconcile(
    raw_occurrences: Iterable[SeriesOccurrence],
    exceptions_applied: Iterable[ExceptionOccurrence],
    singletons: Iterable[SingletonOccurrence],
) -> list[AnyOccurrence]:
    """Module-level convenience wrapper around OccurrenceReconciler."""
    return OccurrenceReconciler().reconcile(raw_occurrences, exceptions_applied, singletons)
