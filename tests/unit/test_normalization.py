"""
Unit tests for goal and task field normalization.
"""

from datetime import date

import pytest

from goalcoach.services.normalization import (
    goal_progress,
    normalize_category,
    normalize_deadline,
    normalize_due_date,
    normalize_goal_fields,
    normalize_priority,
    normalize_task_fields,
    parse_date_phrase,
)

TODAY = date(2025, 6, 4)  # a Wednesday


class TestCategory:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("fitness", "health"),
            ("Fitness", "health"),
            ("health", "health"),
            ("CAREER", "career"),
            ("money", "financial"),
            ("hobbies", "other"),
            (None, "other"),
            ("", "other"),
        ],
    )
    def test_categories_map_into_allowed_set(self, raw, expected):
        assert normalize_category(raw) == expected


class TestDates:
    def test_end_of_year_phrases(self):
        assert normalize_deadline("end of year", TODAY) == "2025-12-31"
        assert normalize_deadline("by the end of the year", TODAY) == "2025-12-31"

    def test_missing_or_unparsable_deadline_defaults_to_end_of_year(self):
        assert normalize_deadline(None, TODAY) == "2025-12-31"
        assert normalize_deadline("someday soon-ish", TODAY) == "2025-12-31"

    def test_iso_dates_pass_through(self):
        assert normalize_deadline("2026-03-15", TODAY) == "2026-03-15"
        assert normalize_deadline("2026-03-15T10:00:00Z", TODAY) == "2026-03-15"

    def test_relative_phrases(self):
        assert parse_date_phrase("tomorrow", TODAY) == date(2025, 6, 5)
        assert parse_date_phrase("next week", TODAY) == date(2025, 6, 11)
        assert parse_date_phrase("in 3 days", TODAY) == date(2025, 6, 7)
        assert parse_date_phrase("in two months", TODAY) == date(2025, 8, 4)
        assert parse_date_phrase("end of month", TODAY) == date(2025, 6, 30)

    def test_weekday_is_next_occurrence(self):
        assert parse_date_phrase("friday", TODAY) == date(2025, 6, 6)
        assert parse_date_phrase("next friday", TODAY) == date(2025, 6, 6)
        # same weekday means a week from today
        assert parse_date_phrase("wednesday", TODAY) == date(2025, 6, 11)

    def test_month_name_dates(self):
        assert parse_date_phrase("March 3, 2026", TODAY) == date(2026, 3, 3)
        assert parse_date_phrase("June 30th", TODAY) == date(2025, 6, 30)
        # already passed this year
        assert parse_date_phrase("March 3", TODAY) == date(2026, 3, 3)
        assert parse_date_phrase("September 2025", TODAY) == date(2025, 9, 30)

    def test_passed_leap_day_rolls_to_end_of_february(self):
        """Should not raise when next year has no Feb 29."""
        after_leap_day = date(2028, 3, 1)

        assert parse_date_phrase("february 29", after_leap_day) == date(2029, 2, 28)
        assert normalize_deadline("february 29", after_leap_day) == "2029-02-28"

    def test_due_date_defaults_to_one_week(self):
        assert normalize_due_date(None, TODAY) == "2025-06-11"
        assert normalize_due_date("whenever", TODAY) == "2025-06-11"


class TestRecords:
    def test_goal_fields_are_completed_with_defaults(self):
        fields = normalize_goal_fields({"title": "  Bench press 225 lbs ", "category": "fitness"}, TODAY)

        assert fields == {
            "title": "Bench press 225 lbs",
            "category": "health",
            "deadline": "2025-12-31",
            "description": "",
            "priority": "medium",
            "status": "not started",
            "progress": 0,
        }

    def test_goal_normalization_is_idempotent(self):
        once = normalize_goal_fields(
            {"title": "Save $5000", "category": "money", "deadline": "end of year", "priority": "HIGH"},
            TODAY,
        )
        assert normalize_goal_fields(once, TODAY) == once

    def test_task_normalization_is_idempotent(self):
        once = normalize_task_fields({"title": "Call the gym", "due_date": "tomorrow", "tags": ["", "gym"]}, TODAY)

        assert once["due_date"] == "2025-06-05"
        assert once["tags"] == ["gym"]
        assert normalize_task_fields(once, TODAY) == once

    def test_priority_defaults_to_medium(self):
        assert normalize_priority("urgent") == "medium"
        assert normalize_priority(" High ") == "high"


class TestGoalProgress:
    @pytest.mark.parametrize(
        "completed, expected",
        [
            ([False, False], (0, "not started")),
            ([True, False, False], (33, "in progress")),
            ([True, True], (100, "completed")),
        ],
    )
    def test_progress_from_tasks(self, completed, expected):
        tasks = [{"completed": flag} for flag in completed]
        assert goal_progress(tasks) == expected
