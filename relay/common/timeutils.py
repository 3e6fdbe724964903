"""
RFC3339 timestamps with nanosecond precision.

`datetime` stops at microseconds, so the sub-second part is carried separately
as an integer nanosecond count.

Rules:
- Accepted input: `YYYY-MM-DDTHH:MM:SS[.fraction]` followed by `Z` or `±HH:MM`,
  with any number of fraction digits; digits past the ninth are truncated.
- Output mirrors RFC3339Nano: trailing zeros of the fraction are trimmed (the
  fraction is omitted when zero) and a zero offset is rendered as `Z`.
- The original UTC offset is preserved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

_RFC3339_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def _parse_offset(tz: str) -> timezone:
    if tz == "Z":
        return timezone.utc
    sign = 1 if tz[0] == "+" else -1
    hours, minutes = int(tz[1:3]), int(tz[4:6])
    if hours > 23 or minutes > 59:
        raise ValueError(f"invalid UTC offset: {tz!r}")
    delta = timedelta(hours=hours, minutes=minutes)
    if not delta:
        return timezone.utc
    return timezone(sign * delta)


def _format_offset(dt: datetime) -> str:
    off = dt.utcoffset() or timedelta(0)
    if not off:
        return "Z"
    total_min = int(off.total_seconds()) // 60
    sign = "+" if total_min >= 0 else "-"
    hh, mm = divmod(abs(total_min), 60)
    return f"{sign}{hh:02d}:{mm:02d}"


@dataclass(frozen=True)
class NanoTimestamp:
    """
    An instant with nanosecond precision.

    `at` is timezone-aware with `microsecond == 0`; `nanosecond` is 0..999_999_999.
    """

    at: datetime
    nanosecond: int = 0

    @classmethod
    def parse(cls, value: str) -> "NanoTimestamp":
        m = _RFC3339_RE.match(value.strip() if isinstance(value, str) else "")
        if not m:
            raise ValueError(f"not an RFC3339 timestamp: {value!r}")
        tz = _parse_offset(m.group("tz"))
        at = datetime.strptime(f"{m.group('date')}T{m.group('time')}", "%Y-%m-%dT%H:%M:%S").replace(tzinfo=tz)
        frac = (m.group("frac") or "")[:9]
        return cls(at=at, nanosecond=int(frac.ljust(9, "0")) if frac else 0)

    def isoformat(self) -> str:
        a = self.at
        base = f"{a.year:04d}-{a.month:02d}-{a.day:02d}T{a.hour:02d}:{a.minute:02d}:{a.second:02d}"
        frac = f"{self.nanosecond:09d}".rstrip("0")
        if frac:
            base += "." + frac
        return base + _format_offset(self.at)

    def to_datetime(self) -> datetime:
        """Microsecond-truncated `datetime` (loses the last three digits)."""
        return self.at.replace(microsecond=self.nanosecond // 1000)

    def __str__(self) -> str:
        return self.isoformat()
