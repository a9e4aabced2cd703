import math
import datetime
from typing import Iterable, Optional


class MathTools:
    """Provides the arithmetic used by the nutrition dashboards."""

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def _goal(goal: Optional[float], default: Optional[float]) -> float:
        if goal is None:
            return float(default) if default is not None else 0.0
        return float(goal)

    @classmethod
    def progress_ratio(
        cls, total: float, goal: Optional[float], default: Optional[float] = None
    ) -> float:
        """Return ``total / goal`` capped at 1.0.

        A missing goal falls back to ``default``. A zero goal never divides:
        nothing consumed counts as 0.0 and anything consumed as 1.0.
        """
        target = cls._goal(goal, default)
        if target <= 0:
            return 0.0 if total <= 0 else 1.0
        return cls.clamp(total / target, 0.0, 1.0)

    @classmethod
    def remaining(
        cls, total: float, goal: Optional[float], default: Optional[float] = None
    ) -> float:
        """Return ``goal - total``; negative values report an overage."""
        return cls._goal(goal, default) - total

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves going up (2.5 -> 3)."""
        return int(math.floor(value + 0.5))

    @staticmethod
    def scaled(value: float, servings: float) -> float:
        return value * servings

    @staticmethod
    def total(values: Iterable[float]) -> float:
        result = 0.0
        for v in values:
            result += v or 0.0
        return result


class DateTools:
    """Timestamp helpers for date buckets and stored workout times."""

    @staticmethod
    def local_now() -> datetime.datetime:
        return datetime.datetime.now().astimezone()

    @staticmethod
    def localize(ts: datetime.datetime) -> datetime.datetime:
        """Attach the local zone to naive timestamps; aware ones are kept as is."""
        if ts.tzinfo is None:
            return ts.astimezone()
        return ts

    @classmethod
    def iso_timestamp(cls, ts: datetime.datetime) -> str:
        return cls.localize(ts).isoformat()

    @classmethod
    def date_bucket(cls, ts: datetime.datetime) -> str:
        """Return ``YYYY-MM-DD`` by truncating the caller-local ISO timestamp."""
        return cls.iso_timestamp(ts)[:10]

    @staticmethod
    def utc_iso(ts: datetime.datetime) -> str:
        """Fixed-width UTC form so that string order equals time order."""
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=datetime.timezone.utc)
        return ts.astimezone(datetime.timezone.utc).isoformat(timespec="microseconds")

    @staticmethod
    def parse(text: Optional[str]) -> Optional[datetime.datetime]:
        if not text:
            return None
        return datetime.datetime.fromisoformat(text)

    @staticmethod
    def today() -> str:
        return DateTools.local_now().date().isoformat()
