"""Bounded recurrence expansion for icsnotes.

Turns a series (base entry, rule, exclusions, exceptions) into the concrete
occurrences that intersect a query window.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, NamedTuple, Optional

from .exceptions import RuleEvaluationError
from .interval import UTC, Window, instant_key, to_timeline
from .models import (
    ExceptionOccurrence,
    RecurrenceException,
    Series,
    SeriesOccurrence,
)
from .rrule_evaluator import DateutilRuleEvaluator, RecurrenceRuleEvaluator

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 1000


@dataclass
class RRuleExpanderConfig:
    """Configuration for recurrence expansion.

    Consolidates expansion settings with explicit defaults.
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    default_timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract expansion configuration from a settings object.

        Args:
            settings: Configuration object with expansion settings

        Returns:
            RRuleExpanderConfig with values from settings or defaults
        """
        return cls(
            max_iterations=getattr(settings, "max_iterations", DEFAULT_MAX_ITERATIONS),
            default_timezone=getattr(settings, "default_timezone", "UTC"),
        )


class ExpansionResult(NamedTuple):
    """Occurrences synthesized from the rule, and exception entries routed in."""

    occurrences: list[SeriesOccurrence]
    exceptions_applied: list[ExceptionOccurrence]


class RecurrenceExpander:
    """Expand series into occurrences with an explicit iteration bound.

    The expander owns loop control, range filtering, exclusion and exception
    resolution. Candidate generation is delegated to a rule evaluator.
    """

    def __init__(
        self,
        evaluator: Optional[RecurrenceRuleEvaluator] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        local_tz: tzinfo = UTC,
    ):
        """Initialize the expander.

        Args:
            evaluator: Rule evaluator capability (dateutil-backed by default)
            max_iterations: Upper bound on candidate evaluations per series
            local_tz: Timezone for all-day and floating instants
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be positive")
        self.evaluator = evaluator or DateutilRuleEvaluator()
        self.max_iterations = max_iterations
        self.local_tz = local_tz

    def expand(
        self,
        series: Series,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        max_iterations: Optional[int] = None,
    ) -> ExpansionResult:
        """Expand one series over a window.

        Expansion stops at the first candidate past ``window_end``, when the rule
        is exhausted, or after ``max_iterations`` candidate evaluations. Hitting
        the bound truncates silently.

        Args:
            series: Series to expand
            window_start: Inclusive lower bound (None for unbounded)
            window_end: Inclusive upper bound (None for unbounded)
            max_iterations: Per-call override of the iteration bound

        Returns:
            ExpansionResult with synthesized occurrences and applied exceptions.
            A rule that cannot be evaluated yields empty lists.
        """
        limit = self.max_iterations if max_iterations is None else max_iterations
        if limit < 1:
            raise ValueError("max_iterations must be positive")

        exceptions_by_key = self._index_exceptions(series)
        exclusion_keys = series.exclusion_keys()
        matched: set[tuple[str, str]] = set()
        occurrences: list[SeriesOccurrence] = []
        exceptions_applied: list[ExceptionOccurrence] = []

        try:
            candidates = self.evaluator.iterate(series.rule, series.base.start)
        except RuleEvaluationError as e:
            logger.warning("Skipping series %s: %s", series.series_id, e)
            return ExpansionResult([], [])

        iterations = 0
        while True:
            iterations += 1
            if iterations > limit:
                logger.debug(
                    "Expansion of %s truncated after %d candidates", series.series_id, limit
                )
                break

            try:
                candidate = next(candidates, None)
            except RuleEvaluationError as e:
                logger.warning("Stopping expansion of %s: %s", series.series_id, e)
                break
            if candidate is None:
                break

            if window_end is not None and to_timeline(candidate, self.local_tz) > window_end:
                break

            key = instant_key(candidate)
            if key in exclusion_keys:
                # EXDATE wins over an exception for the same instant
                if key in exceptions_by_key:
                    matched.add(key)
                continue

            exception = exceptions_by_key.get(key)
            if exception is not None:
                matched.add(key)
                if exception.entry.interval(self.local_tz).overlaps(window_start, window_end):
                    exceptions_applied.append(
                        self._exception_occurrence(exception, series.series_id, added=False)
                    )
                continue

            entry = series.base.shifted_to(candidate)
            if entry.interval(self.local_tz).overlaps(window_start, window_end):
                occurrences.append(
                    SeriesOccurrence(
                        entry=entry,
                        series_id=series.series_id,
                        recurrence_id=candidate,
                    )
                )

        for key, exception in exceptions_by_key.items():
            if key in matched:
                continue
            if exception.entry.interval(self.local_tz).overlaps(window_start, window_end):
                logger.debug(
                    "Exception %s of %s matched no candidate; keeping it as an addition",
                    exception.recurrence_id,
                    series.series_id,
                )
                exceptions_applied.append(
                    self._exception_occurrence(exception, series.series_id, added=True)
                )

        logger.debug(
            "Expanded %s: %d occurrences, %d exceptions, %d candidates evaluated",
            series.series_id,
            len(occurrences),
            len(exceptions_applied),
            min(iterations - 1, limit),
        )
        return ExpansionResult(occurrences, exceptions_applied)

    def expand_window(self, series: Series, window: Window) -> ExpansionResult:
        return self.expand(series, window.start, window.end)

    @staticmethod
    def _index_exceptions(series: Series) -> dict[tuple[str, str], RecurrenceException]:
        exceptions_by_key: dict[tuple[str, str], RecurrenceException] = {}
        for exception in series.exceptions:
            key = instant_key(exception.recurrence_id)
            if key in exceptions_by_key:
                logger.debug(
                    "Duplicate exception for %s at %s; keeping the first",
                    series.series_id,
                    exception.recurrence_id,
                )
                continue
            exceptions_by_key[key] = exception
        return exceptions_by_key

    @staticmethod
    def _exception_occurrence(
        exception: RecurrenceException, series_id: str, added: bool
    ) -> ExceptionOccurrence:
        return ExceptionOccurrence(
            entry=exception.entry,
            series_id=series_id,
            recurrence_id=exception.recurrence_id,
            added=added,
        )
