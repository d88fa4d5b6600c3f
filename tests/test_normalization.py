import pytest

from leadmagnet.core.constants import LeadSource
from leadmagnet.services.normalization import (
    derive_name_from_email,
    normalize_boolean,
    normalize_download_count,
    normalize_email,
    normalize_first_name,
    normalize_iso_timestamp,
    normalize_lead_source,
    normalize_record_id,
    normalize_text,
    normalize_token,
)


def test_normalize_text():
    assert normalize_text("  hello  ") == "hello"
    assert normalize_text("a\x00\x01b\nc") == "a b c"
    assert normalize_text("abcdef", max_length=3) == "abc"

    assert normalize_text(None) is None
    assert normalize_text(42) is None
    assert normalize_text("   ") is None
    assert normalize_text("\t\n") is None


def test_normalize_email():
    assert normalize_email("test@example.com") == "test@example.com"
    assert normalize_email("  Test@Example.COM  ") == "test@example.com"

    assert normalize_email(None) is None
    assert normalize_email("") is None
    assert normalize_email("invalid") is None  # No @
    assert normalize_email("invalid@") is None  # No domain
    assert normalize_email("user@localhost") is None  # No dot after @
    assert normalize_email("a@b@c.com") is None
    assert normalize_email("has space@example.com") is None
    assert normalize_email(["x@example.com"]) is None


def test_normalize_email_is_idempotent_and_capped():
    once = normalize_email("  Jane.Doe+promo@Example.ORG ")
    assert once == "jane.doe+promo@example.org"
    assert normalize_email(once) == once

    long_local = "a" * 400 + "@example.com"
    # truncated to 320 chars the domain is cut off, so the value is rejected
    assert normalize_email(long_local) is None

    near_limit = "a" * 300 + "@example.com"
    assert normalize_email(near_limit) == near_limit


def test_normalize_token():
    assert normalize_token("abc123") == "abc123"
    assert normalize_token("  abc_DEF-9 ") == "abc_DEF-9"

    assert normalize_token("") is None
    assert normalize_token(None) is None
    assert normalize_token("abc 123") is None
    assert normalize_token("abc!") is None
    assert normalize_token("täst") is None
    assert normalize_token(123) is None
    assert len(normalize_token("x" * 200)) == 120


def test_normalize_first_name():
    assert normalize_first_name(" Anna ") == "Anna"
    assert normalize_first_name("") is None
    assert len(normalize_first_name("n" * 500)) == 120


def test_normalize_lead_source():
    assert normalize_lead_source("AD") is LeadSource.AD
    assert normalize_lead_source(" organic ") is LeadSource.ORGANIC
    assert normalize_lead_source("email") is None
    assert normalize_lead_source(None) is None


def test_normalize_record_id():
    assert normalize_record_id("recAbC12345") == "recAbC12345"
    assert normalize_record_id("  recAbC12345 ") == "recAbC12345"

    assert normalize_record_id("rec1234567") is None  # Too short
    assert normalize_record_id("app12345678") is None
    assert normalize_record_id("rec12345678/../x") is None
    assert normalize_record_id(None) is None


def test_normalize_boolean():
    assert normalize_boolean(True) is True
    assert normalize_boolean(False) is False
    assert normalize_boolean("true") is True
    assert normalize_boolean("false") is False

    assert normalize_boolean("TRUE") is None
    assert normalize_boolean("yes") is None
    assert normalize_boolean(1) is None
    assert normalize_boolean(None) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2026-03-01T09:15:00Z", "2026-03-01T09:15:00.000Z"),
        ("2026-03-01T09:15:00.123456Z", "2026-03-01T09:15:00.123Z"),
        ("2026-03-01T10:15:00+01:00", "2026-03-01T09:15:00.000Z"),
        ("2026-03-01", "2026-03-01T00:00:00.000Z"),
        ("2026-03-01T08:00:00.5Z", "2026-03-01T08:00:00.500Z"),
    ],
)
def test_normalize_iso_timestamp(raw, expected):
    assert normalize_iso_timestamp(raw) == expected


def test_normalize_iso_timestamp_invalid():
    assert normalize_iso_timestamp("yesterday") is None
    assert normalize_iso_timestamp("") is None
    assert normalize_iso_timestamp(1700000000) is None
    assert normalize_iso_timestamp(None) is None
    assert normalize_iso_timestamp("0001-01-01T00:00:00+01:00") is None
    assert normalize_iso_timestamp("9999-12-31T23:59:59-01:00") is None


def test_normalize_download_count():
    assert normalize_download_count(3) == 3
    assert normalize_download_count(3.9) == 3
    assert normalize_download_count(-2) == 0
    assert normalize_download_count("7") == 7
    assert normalize_download_count("12 downloads") == 12
    assert normalize_download_count("-4") == 0

    assert normalize_download_count(None) == 0
    assert normalize_download_count("many") == 0
    assert normalize_download_count(float("nan")) == 0
    assert normalize_download_count(True) == 0


def test_derive_name_from_email():
    assert derive_name_from_email("jane.doe@example.com") == "jane doe"
    assert derive_name_from_email("max__power-99@example.com") == "max power 99"
    assert derive_name_from_email("...@example.com") == "Lead"
