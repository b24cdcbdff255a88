"""Tests for phone number normalisation and fingerprinting."""

import hashlib

import pytest

from wakecheck.core.phone import (
    fingerprint_phone_number,
    normalize_phone_number,
    phone_fingerprint,
)


class TestNormalizePhoneNumber:
    """Tests for normalize_phone_number."""

    def test_plus_prefixed_kept(self):
        assert normalize_phone_number("+14155551234") == "+14155551234"

    def test_formatting_stripped(self):
        assert normalize_phone_number("+1 (415) 555-1234") == "+14155551234"

    def test_ten_digits_get_default_country_code(self):
        assert normalize_phone_number("(415) 555-1234") == "+14155551234"

    def test_eleven_digits_with_trunk_digit_promoted(self):
        assert normalize_phone_number("1-415-555-1234") == "+14155551234"

    def test_other_shapes_get_plus_prefix(self):
        assert normalize_phone_number("447911123456") == "+447911123456"

    def test_explicit_country_code(self):
        assert normalize_phone_number("0612345678", country_code="31") == "+310612345678"

    def test_no_digits_returns_empty(self):
        assert normalize_phone_number("n/a") == ""
        assert normalize_phone_number("+") == ""


class TestFingerprint:
    """Tests for fingerprint_phone_number and phone_fingerprint."""

    def test_fingerprint_is_sha256_hex(self):
        expected = hashlib.sha256(b"+14155551234").hexdigest()
        assert fingerprint_phone_number("+14155551234") == expected

    def test_fingerprint_is_stable(self):
        first = fingerprint_phone_number(normalize_phone_number("+14155551234"))
        second = fingerprint_phone_number(normalize_phone_number("+14155551234"))
        assert first == second
        assert len(first) == 64

    def test_equivalent_spellings_share_fingerprint(self):
        assert phone_fingerprint("(415) 555-1234") == phone_fingerprint("+1 415 555 1234")

    def test_different_numbers_differ(self):
        assert phone_fingerprint("4155551234") != phone_fingerprint("4155551235")

    def test_no_digits_raises(self):
        with pytest.raises(ValueError):
            phone_fingerprint("---")
