"""
Tests for query predicates and the normalization/timestamp helpers.
"""

import pytest
from datetime import datetime

from app.filters import Contains, DateRange, Equals, InSet, compile_predicate, compile_predicates, month_range
from app.models import FreshdeskTicket, TicketOrg
from app.services.normalization import (
    clean_phone,
    email_domain,
    normalize_email,
    normalize_org_name,
    to_int,
)
from app.utils.datetime import format_since, parse_remote_datetime


def _sql(clause) -> str:
    return str(clause.compile(compile_kwargs={"literal_binds": True}))


class TestPredicates:

    def test_equals(self):
        assert _sql(compile_predicate(Equals(FreshdeskTicket.status, 5))) == "freshdesk_tickets.status = 5"

    def test_contains_ors_columns(self):
        sql = _sql(compile_predicate(Contains((FreshdeskTicket.subject, TicketOrg.name), "vpn")))
        assert "freshdesk_tickets.subject" in sql
        assert "ticket_orgs.name" in sql
        assert " OR " in sql

    def test_contains_escapes_wildcards(self):
        sql = _sql(compile_predicate(Contains(FreshdeskTicket.subject, "100%_off")))
        assert "100\\%\\_off" in sql

    def test_blank_contains_is_noop(self):
        assert compile_predicate(Contains(FreshdeskTicket.subject, "   ")) is None
        assert compile_predicates([Contains(FreshdeskTicket.subject, "")]) == []

    def test_in_set(self):
        sql = _sql(compile_predicate(InSet(FreshdeskTicket.status, [4, 5])))
        assert "IN (4, 5)" in sql

    def test_date_range_is_half_open(self):
        clause = compile_predicate(DateRange(FreshdeskTicket.created_at, datetime(2025, 1, 1), datetime(2025, 2, 1)))
        sql = str(clause.compile())
        assert ">=" in sql
        assert "<" in sql and "<=" not in sql

    def test_open_date_range_is_noop(self):
        assert compile_predicate(DateRange(FreshdeskTicket.created_at)) is None

    def test_unknown_predicate(self):
        with pytest.raises(TypeError):
            compile_predicate("status = 5")


class TestMonthRange:

    def test_month(self):
        assert month_range(2025, 2) == (datetime(2025, 2, 1), datetime(2025, 3, 1))

    def test_december_rolls_over(self):
        assert month_range(2024, 12) == (datetime(2024, 12, 1), datetime(2025, 1, 1))

    def test_whole_year(self):
        assert month_range(2025) == (datetime(2025, 1, 1), datetime(2026, 1, 1))

    @pytest.mark.parametrize("year,month", [(2025, 0), (2025, 13), (1800, 1)])
    def test_out_of_range(self, year, month):
        with pytest.raises(ValueError):
            month_range(year, month)


class TestNormalization:

    @pytest.mark.parametrize("raw", ["Alianz ", "ALIANZ", " alianz"])
    def test_org_name_variants(self, raw):
        assert normalize_org_name(raw) == "ALIANZ"

    def test_blank_org_name(self):
        assert normalize_org_name("  ") is None
        assert normalize_org_name(None) is None

    def test_no_aliases_by_default(self):
        assert normalize_org_name("Procet") == "PROCET"

    def test_alias(self):
        aliases = {"procet": "Fijaciones Procet"}
        assert normalize_org_name(" Procet", aliases) == "FIJACIONES PROCET"

    def test_email_helpers(self):
        assert normalize_email("  Ana@Acme.COM ") == "ana@acme.com"
        assert normalize_email("") is None
        assert email_domain("ana@Acme.com") == "acme.com"
        assert email_domain("no-at-sign") is None

    def test_clean_phone(self):
        assert clean_phone("+56 (9) 1234-5678") == "+56912345678"

    @pytest.mark.parametrize("value,expected", [
        (42, 42),
        ("42", 42),
        (" 7 ", 7),
        ("", None),
        ("abc", None),
        (None, None),
        (True, None),
    ])
    def test_to_int(self, value, expected):
        assert to_int(value) == expected


class TestTimestamps:

    @pytest.mark.parametrize("raw", [
        "2025-01-03T12:30:00Z",
        "2025-01-03T09:30:00-03:00",
        "2025-01-03T09:30:00-0300",
        "2025-01-03 12:30:00+00:00",
    ])
    def test_parse_to_naive_utc(self, raw):
        assert parse_remote_datetime(raw) == datetime(2025, 1, 3, 12, 30)

    @pytest.mark.parametrize("raw", [None, "", "yesterday", 12345])
    def test_unparseable(self, raw):
        assert parse_remote_datetime(raw) is None

    def test_format_since(self):
        assert format_since(datetime(2025, 1, 10, 11, 50)) == "2025-01-10T11:50:00Z"
