"""
Year view aggregation: one counter per calendar date.
"""

from datetime import date, timedelta
from dataclasses import dataclass, field
from typing import Optional

from .appointments import YearRecord


@dataclass
class YearCell:
    date: date
    total: Optional[int] = None  # None renders as an empty cell
    record_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "total": self.total,
            "record_ids": list(self.record_ids),
        }


class YearAggregator:
    """Accumulates per-day totals from filtered year records."""

    def aggregate(self, records: list[YearRecord]) -> dict[date, int]:
        totals: dict[date, int] = {}
        for record in records:
            totals[record.date] = totals.get(record.date, 0) + record.total
        return totals

    def cells(self, year: int, records: list[YearRecord]) -> list[YearCell]:
        """
        One cell per day of the year.

        Records outside the year are ignored; days without a record keep an
        empty counter.
        """
        in_year = [record for record in records if record.date.year == year]
        totals = self.aggregate(in_year)
        record_ids: dict[date, list[str]] = {}
        for record in in_year:
            record_ids.setdefault(record.date, []).append(record.id)

        cells = []
        day = date(year, 1, 1)
        while day.year == year:
            cells.append(YearCell(date=day, total=totals.get(day), record_ids=record_ids.get(day, [])))
            day += timedelta(days=1)
        return cells
