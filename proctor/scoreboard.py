"""
Scoreboard aggregation and test-history filtering.
"""

import math
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

from proctor.models import ScoreboardRow, ScoreRecord


def _percentage(score: int, possible: int) -> int:
    if possible <= 0:
        return 0
    # Half-up, matching how the dashboard has always rounded
    return int(math.floor(score / possible * 100 + 0.5))


def aggregate_scores(records: Iterable[ScoreRecord]) -> List[ScoreboardRow]:
    """
    Fold individual attempts into one row per worker.

    Args:
        records: Completed attempts as returned by the scores endpoint

    Returns:
        Rows sorted by percentage, highest first
    """
    rows: Dict[Optional[str], ScoreboardRow] = {}

    for record in records:
        worker_id = (record.worker.id if record.worker else None) or record.id
        name = (record.worker.name if record.worker else None) or "Unknown"

        row = rows.get(worker_id)
        if row is None:
            row = ScoreboardRow(worker_id=worker_id, name=name)
            rows[worker_id] = row

        row.total_score += record.score
        row.total_possible_score += record.total_questions
        row.test_count += 1
        row.percentage = _percentage(row.total_score, row.total_possible_score)

    # sorted() is stable, so ties keep first-seen order
    return sorted(rows.values(), key=lambda r: r.percentage, reverse=True)


def filter_by_name(rows: List[ScoreboardRow], term: Optional[str]) -> List[ScoreboardRow]:
    """Case-insensitive substring match on the worker name."""
    if not term or not term.strip():
        return rows
    needle = term.strip().lower()
    return [row for row in rows if needle in row.name.lower()]


def filter_history_by_date(
    records: List[ScoreRecord], on: Optional[Union[date, str]]
) -> List[ScoreRecord]:
    """
    Keep attempts created on the given calendar day.

    Args:
        records: Attempt history
        on: Day as a date or ISO ``YYYY-MM-DD`` string; falsy keeps everything
    """
    if not on:
        return records
    day = date.fromisoformat(on) if isinstance(on, str) else on
    if isinstance(day, datetime):
        day = day.date()
    return [r for r in records if r.created_at is not None and r.created_at.date() == day]
