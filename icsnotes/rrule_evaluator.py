"""Recurrence rule evaluation backed by python-dateutil.

The expander never interprets RRULE text itself. It asks an evaluator for a
lazy, monotonic stream of candidate instants and owns loop control on top.
"""

import logging
from collections.abc import Iterator
from datetime import datetime, time, timezone
from typing import Optional, Protocol

from dateutil import parser as date_parser
from dateutil.rrule import rrule, rruleset, rrulestr

from .exceptions import RuleEvaluationError
from .interval import Instant, is_date_instant
from .models import RecurrenceRule

logger = logging.getLogger(__name__)


class RecurrenceRuleEvaluator(Protocol):
    """Capability that turns a rule into candidate instants."""

    def iterate(self, rule: RecurrenceRule, start: Instant) -> Iterator[Instant]:
        """Return candidates in non-decreasing order, starting at ``start``.

        Raises:
            RuleEvaluationError: If the rule cannot be evaluated
        """
        ...


class DateutilRuleEvaluator:
    """Evaluate RRULE/RDATE sets with dateutil's rrulestr and rruleset.

    DTSTART is always the first candidate, matching RFC 5545. Date-only
    series are evaluated at naive midnight and converted back to dates.
    """

    def iterate(self, rule: RecurrenceRule, start: Instant) -> Iterator[Instant]:
        all_day = is_date_instant(start)
        dtstart = datetime.combine(start, time.min) if all_day else start
        rule_set = self._build_rule_set(rule, dtstart, all_day)
        return self._emit(rule_set, all_day)

    @staticmethod
    def _emit(rule_set: rruleset, all_day: bool) -> Iterator[Instant]:
        try:
            for candidate in rule_set:
                yield candidate.date() if all_day else candidate
        except (ValueError, TypeError, OverflowError) as e:
            raise RuleEvaluationError(f"Rule evaluation failed: {e}") from e

    def _build_rule_set(self, rule: RecurrenceRule, dtstart: datetime, all_day: bool) -> rruleset:
        rule_set = rruleset()
        rule_set.rdate(dtstart)

        if rule.text:
            rule_set.rrule(self._parse_rrule(rule.text, dtstart))

        for rdate in rule.rdates:
            coerced = self._coerce_rdate(rdate, dtstart, all_day)
            if coerced is None:
                logger.warning("Ignoring RDATE %r with mismatched granularity", rdate)
                continue
            rule_set.rdate(coerced)

        return rule_set

    def _parse_rrule(self, text: str, dtstart: datetime) -> rrule:
        """Parse RRULE text with UNTIL coerced to DTSTART's kind.

        dateutil rejects an UNTIL whose tz-awareness differs from DTSTART, which
        real feeds produce all the time (date-only UNTIL on zoned series, UTC
        UNTIL on floating series), so UNTIL is applied separately.
        """
        body = text.strip()
        if body.upper().startswith("RRULE:"):
            body = body[len("RRULE:"):]

        until_value = None
        parts = []
        for part in body.split(";"):
            part = part.strip()
            if not part:
                continue
            if part.upper().startswith("UNTIL="):
                until_value = part.split("=", 1)[1]
            else:
                parts.append(part)

        try:
            parsed = rrulestr(";".join(parts), dtstart=dtstart)
            if until_value:
                parsed = parsed.replace(until=self._coerce_until(until_value, dtstart))
        except (ValueError, TypeError, OverflowError) as e:
            raise RuleEvaluationError(f"Invalid RRULE {text!r}: {e}") from e

        if not isinstance(parsed, rrule):
            raise RuleEvaluationError(f"Unsupported RRULE {text!r}")
        return parsed

    @staticmethod
    def _coerce_until(value: str, dtstart: datetime) -> datetime:
        value = value.strip()
        date_only = len(value) == 8 and value.isdigit()
        until = date_parser.parse(value)

        if date_only:
            # A date-only UNTIL includes that whole day
            until = datetime.combine(until.date(), time.max)
            if dtstart.tzinfo is not None:
                until = until.replace(tzinfo=dtstart.tzinfo)
            return until

        if dtstart.tzinfo is None:
            return until.replace(tzinfo=None)
        if until.tzinfo is None:
            return until.replace(tzinfo=timezone.utc)
        return until

    @staticmethod
    def _coerce_rdate(value: Instant, dtstart: datetime, all_day: bool) -> Optional[datetime]:
        if all_day:
            if not is_date_instant(value):
                return None
            return datetime.combine(value, time.min)
        if is_date_instant(value) or not isinstance(value, datetime):
            return None
        if (value.tzinfo is None) != (dtstart.tzinfo is None):
            return None
        return value
