"""Tests for field-level form validation."""

import pytest

from conftest import VALID_ADDRESS, VALID_CARD
from pawcart.domain.validation import AddressForm, CardForm, ContactForm, collect_errors, is_well_formed_otp


def address(**overrides):
    return {**VALID_ADDRESS, **overrides}


def errors_by_field(errors):
    return {e.field: e.message for e in errors}


class TestAddressForm:
    def test_valid(self):
        assert collect_errors(AddressForm, VALID_ADDRESS, "billing") == []

    def test_phone_must_be_ten_digits(self):
        errors = collect_errors(AddressForm, address(phone="12345"), "billing")
        assert len(errors) == 1
        assert errors[0].section == "billing"
        assert errors[0].field == "phone"
        assert errors[0].message == "must be 10 digits"

    @pytest.mark.parametrize("name, message", [
        ("Nimal3", "only letters allowed"),
        ("A" * 31, "max 30 characters"),
        ("", "is required"),
    ])
    def test_name(self, name, message):
        errors = collect_errors(AddressForm, address(full_name=name), "billing")
        assert errors_by_field(errors) == {"full_name": message}

    def test_name_allows_internal_spaces(self):
        assert collect_errors(AddressForm, address(full_name="Anne  Marie Silva"), "billing") == []

    @pytest.mark.parametrize("postal_code", ["1234", "1234567", "12a45"])
    def test_postal_code_invalid(self, postal_code):
        errors = collect_errors(AddressForm, address(postal_code=postal_code), "billing")
        assert errors_by_field(errors) == {"postal_code": "must be 5-6 digits"}

    @pytest.mark.parametrize("postal_code", ["12345", "123456"])
    def test_postal_code_valid(self, postal_code):
        assert collect_errors(AddressForm, address(postal_code=postal_code), "billing") == []

    def test_street(self):
        assert errors_by_field(collect_errors(AddressForm, address(street=""), "billing")) == {"street": "is required"}
        assert errors_by_field(collect_errors(AddressForm, address(street="x" * 51), "billing")) == {
            "street": "max 50 characters"
        }

    def test_all_errors_reported_together(self):
        errors = collect_errors(
            AddressForm,
            address(full_name="R2D2", phone="1", postal_code="x", street=""),
            "shipping",
        )
        assert set(errors_by_field(errors)) == {"full_name", "phone", "postal_code", "street"}
        assert all(e.section == "shipping" for e in errors)

    def test_missing_field(self):
        data = dict(VALID_ADDRESS)
        del data["phone"]
        assert errors_by_field(collect_errors(AddressForm, data, "billing")) == {"phone": "is required"}


class TestContactForm:
    @pytest.mark.parametrize("email", ["a@b.co", "nimal.perera@mail.example.lk"])
    def test_valid(self, email):
        assert collect_errors(ContactForm, {"email": email}, "contact") == []

    @pytest.mark.parametrize("email", ["", "nimal", "nimal@mail", "ni mal@mail.com", "@mail.com"])
    def test_invalid(self, email):
        errors = collect_errors(ContactForm, {"email": email}, "contact")
        assert errors_by_field(errors) == {"email": "invalid email address"}


class TestCardForm:
    def test_valid(self):
        assert collect_errors(CardForm, VALID_CARD, "card") == []

    @pytest.mark.parametrize("field, value, message", [
        ("name", "J0hn", "only letters allowed"),
        ("number", "12345678901", "must be 12-16 digits"),
        ("number", "12345678901234567", "must be 12-16 digits"),
        ("number", "4111-1111-1111", "must be 12-16 digits"),
        ("expiry", "2001-01-01", "must be a future date"),
        ("expiry", "soon", "must be a valid date"),
        ("cvv", "12", "must be 3 digits"),
        ("cvv", "1234", "must be 3 digits"),
    ])
    def test_invalid(self, field, value, message):
        errors = collect_errors(CardForm, {**VALID_CARD, field: value}, "card")
        assert errors_by_field(errors) == {field: message}


class TestOtpShape:
    @pytest.mark.parametrize("code, ok", [
        ("123456", True),
        ("12345", False),
        ("1234567", False),
        ("12a456", False),
        ("", False),
        (123456, False),
        (None, False),
    ])
    def test_shape(self, code, ok):
        assert is_well_formed_otp(code) is ok
