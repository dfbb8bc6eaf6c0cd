"""
Tests for status aggregation and status filter parsing
"""

import pytest

from lending_core.status import AccountStatus, aggregate_client_status, parse_status_filter
from lending_core.exceptions import ValidationError

PENDING = AccountStatus.PENDING
PAID = AccountStatus.PAID
DELINQUENT = AccountStatus.DELINQUENT


class TestAggregateClientStatus:
    """Delinquent beats paid beats pending"""

    def test_any_delinquent_wins(self):
        assert aggregate_client_status([PAID, DELINQUENT], PENDING) == DELINQUENT
        assert aggregate_client_status([PENDING, DELINQUENT, PAID], PAID) == DELINQUENT

    def test_all_paid(self):
        assert aggregate_client_status([PAID, PAID], PENDING) == PAID

    def test_pending_and_paid(self):
        assert aggregate_client_status([PENDING, PAID], DELINQUENT) == PENDING

    def test_no_loans_keeps_current(self):
        for current in AccountStatus:
            assert aggregate_client_status([], current) == current

    def test_accepts_generators(self):
        assert aggregate_client_status((s for s in [PAID]), PENDING) == PAID

    def test_idempotent(self):
        statuses = [PENDING, PAID]
        once = aggregate_client_status(statuses, DELINQUENT)
        assert aggregate_client_status(statuses, once) == once


class TestParseStatusFilter:

    @pytest.mark.parametrize("value,expected", [
        ("pending", PENDING),
        ("paid", PAID),
        ("delinquent", DELINQUENT),
        ("mora", DELINQUENT),
        ("  PAID ", PAID),
        ("all", None),
        ("", None),
        (None, None),
    ])
    def test_known_values(self, value, expected):
        assert parse_status_filter(value) == expected

    def test_unknown_value(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_status_filter("closed")
        assert "closed" in exc_info.value.message
