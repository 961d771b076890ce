from datetime import date

import pytest

from core.events import DataRefreshed
from services.completed_days import CompletedDays


@pytest.fixture()
def days(store, bus):
    return CompletedDays(store, bus, today=lambda: date(2024, 6, 10))


def test_mark_defaults_to_today_and_notifies_once(days, recorder):
    events = recorder(DataRefreshed)

    assert days.mark() is True
    assert days.mark(date(2024, 6, 10)) is False

    assert days.is_completed()
    assert events == [DataRefreshed("completed days")]


def test_unmark_only_changes_marked_days(days, recorder):
    days.mark(date(2024, 6, 1))
    events = recorder(DataRefreshed)

    assert days.unmark(date(2024, 6, 2)) is False
    assert days.unmark(date(2024, 6, 1)) is True

    assert days.days() == []
    assert len(events) == 1


def test_month_filter_and_completion_rate(days):
    for day in (date(2024, 5, 31), date(2024, 6, 1), date(2024, 6, 15), date(2023, 6, 2)):
        days.mark(day)

    assert days.days(2024, 6) == [date(2024, 6, 1), date(2024, 6, 15)]
    assert days.days(2024) == [date(2024, 5, 31), date(2024, 6, 1), date(2024, 6, 15)]
    assert days.completion_rate(2024, 6) == pytest.approx(2 / 30)
    assert days.completion_rate(2024, 2) == 0.0


def test_streak_counts_back_from_today(days):
    assert days.current_streak() == 0
    for day in (8, 9, 10):
        days.mark(date(2024, 6, day))
    days.mark(date(2024, 6, 6))

    assert days.current_streak() == 3

    days.unmark(date(2024, 6, 10))
    assert days.current_streak() == 0
