"""Tests for menu availability rules."""

from datetime import datetime, timezone

import pytest

from delivery_api.core.errors import DomainError
from delivery_api.services.availability import get_remaining_quantity, get_rule_summary, is_available

# Monday
AT = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)


def rule(rule_type, config, enabled=True):
    return {"rule_type": rule_type, "config": config, "is_enabled": enabled}


class TestIsAvailable:
    def test_no_rules(self):
        assert is_available([], AT)

    def test_day_of_week_names_and_numbers(self):
        assert is_available([rule("day_of_week", {"days": ["mon", "wed"]})], AT)
        assert is_available([rule("day_of_week", {"allowed_days": [1]})], AT)
        assert not is_available([rule("day_of_week", {"days": [0, 6]})], AT)

    def test_time_window(self):
        assert is_available([rule("time_window", {"start": "09:00", "end": "17:00"})], AT)
        assert not is_available([rule("time_window", {"start": "11:00", "end": "17:00"})], AT)

    def test_overnight_time_window(self):
        overnight = [rule("time_window", {"start": "22:00", "end": "02:00"})]
        assert is_available(overnight, datetime(2025, 1, 6, 23, 30, tzinfo=timezone.utc))
        assert not is_available(overnight, AT)

    def test_quantity_limit(self):
        limit = [rule("quantity_limit", {"max_quantity": 20})]
        assert is_available(limit, AT, sold=19)
        assert not is_available(limit, AT, sold=20)

    def test_date_range_is_inclusive(self):
        assert is_available([rule("date_range", {"start": "2025-01-01", "end": "2025-01-06"})], AT)
        assert not is_available([rule("date_range", {"end": "2025-01-05"})], AT)
        assert not is_available([rule("date_range", {"start": "2025-01-07"})], AT)

    def test_all_rules_must_pass(self):
        rules = [
            rule("day_of_week", {"days": ["mon"]}),
            rule("time_window", {"start": "12:00", "end": "17:00"}),
        ]
        assert not is_available(rules, AT)

    def test_disabled_rules_are_skipped(self):
        assert is_available([rule("day_of_week", {"days": ["sun"]}, enabled=False)], AT)

    def test_unknown_rule_type(self):
        with pytest.raises(DomainError):
            is_available([rule("moon_phase", {})], AT)

    def test_bad_time(self):
        with pytest.raises(DomainError):
            is_available([rule("time_window", {"start": "nine", "end": "17:00"})], AT)


class TestRuleSummary:
    @pytest.mark.parametrize(
        "item,expected",
        [
            (rule("time_window", {"start": "09:00", "end": "17:00"}), "Available 09:00–17:00"),
            (rule("day_of_week", {"days": ["fri", "mon", "wednesday"]}), "Available Mon, Wed, Fri"),
            (rule("quantity_limit", {"max_quantity": 20}), "Limited to 20 units"),
            (
                rule("date_range", {"start": "2025-01-01", "end": "2025-01-31"}),
                "Available Jan 1, 2025 – Jan 31, 2025",
            ),
            (rule("date_range", {"start": "2025-03-15"}), "Available from Mar 15, 2025"),
            (rule("date_range", {"end": "2025-03-15"}), "Available until Mar 15, 2025"),
        ],
    )
    def test_summaries(self, item, expected):
        assert get_rule_summary(item) == expected

    def test_disabled_prefix(self):
        summary = get_rule_summary(rule("quantity_limit", {"max_quantity": 5}, enabled=False))
        assert summary == "(disabled) Limited to 5 units"


class TestRemainingQuantity:
    def test_smallest_allowance_wins(self):
        rules = [
            rule("quantity_limit", {"max_quantity": 20}),
            rule("quantity_limit", {"max_quantity": 10}),
            rule("quantity_limit", {"max_quantity": 1}, enabled=False),
        ]
        assert get_remaining_quantity(rules, sold=4) == 6

    def test_never_negative(self):
        assert get_remaining_quantity([rule("quantity_limit", {"max_quantity": 3})], sold=5) == 0

    def test_unlimited(self):
        assert get_remaining_quantity([rule("day_of_week", {"days": ["mon"]})]) is None
