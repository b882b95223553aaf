"""
Unit tests for public API input normalization and pagination cursors
"""

import pytest

from crm.config import settings
from crm.modules.public_api.cursor import decode_offset_cursor, encode_offset_cursor, parse_limit
from crm.modules.public_api.sanitize import normalize_email, normalize_phone, sanitize_uuid


@pytest.mark.parametrize("raw,expected", [
    ("+55 (11) 98765-4321", "+5511987654321"),
    ("0055 11 98765-4321", "+5511987654321"),
    ("11 98765-4321", "+5511987654321"),
    ("011 98765-4321", "+5511987654321"),
    ("+1 415 555 0100", "+14155550100"),
    ("12345", None),
    ("+0123456789", None),
    ("", None),
    (None, None),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw, "55") == expected


def test_normalize_phone_uses_configured_country_code(monkeypatch):
    monkeypatch.setattr(settings, "default_phone_country_code", "1")
    assert normalize_phone("4155550100") == "+14155550100"


@pytest.mark.parametrize("raw,expected", [
    ("987654321", "+987654321"),
    ("+999 1234 5678", "+99912345678"),
    ("+55 11 98765-4321 ext. 12", "+551198765432112"),
])
def test_normalize_phone_is_a_length_heuristic(raw, expected):
    """Short local numbers, unknown country codes and extensions pass through as plain digits."""
    assert normalize_phone(raw, "55") == expected


def test_normalize_email():
    assert normalize_email("  Ana@Example.COM ") == "ana@example.com"
    assert normalize_email("   ") is None


def test_sanitize_uuid():
    assert sanitize_uuid("7C9E6679-7425-40DE-944B-E07FC1F90AE7") == "7c9e6679-7425-40de-944b-e07fc1f90ae7"
    assert sanitize_uuid("sales") is None
    assert sanitize_uuid(None) is None


def test_cursor_is_opaque_and_decodes():
    cursor = encode_offset_cursor(250)
    assert "250" not in cursor
    assert "=" not in cursor
    assert decode_offset_cursor(cursor) == 250


@pytest.mark.parametrize("cursor", [None, "", "%%%", "bm90LWpzb24", encode_offset_cursor(-5)])
def test_bad_cursor_starts_over(cursor):
    assert decode_offset_cursor(cursor) == 0


def test_parse_limit_defaults_and_clamps():
    assert parse_limit(None) == settings.public_api_default_page_size
    assert parse_limit("abc") == settings.public_api_default_page_size
    assert parse_limit("0") == 1
    assert parse_limit("10") == 10
    assert parse_limit(str(settings.public_api_max_page_size + 1)) == settings.public_api_max_page_size
