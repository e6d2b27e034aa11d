"""Tests for NIK / NPWP validation."""

import pytest

from indo_payroll.validators import (
    InvalidEmployeeError,
    describe_ptkp_status,
    format_npwp,
    validate_employee,
    validate_nik,
    validate_npwp,
)


class TestNik:
    def test_valid(self):
        assert validate_nik("3171234567890123") == []

    @pytest.mark.parametrize(
        "nik", [None, "", "317123456789012", "31712345678901234", "3171-2345678901x", "abcdefghijklmnop"]
    )
    def test_wrong_shape(self, nik):
        assert validate_nik(nik) == ["NIK must be exactly 16 digits"]

    def test_trailing_newline_rejected(self):
        assert validate_nik("3201234567890123\n") == ["NIK must be exactly 16 digits"]

    def test_non_ascii_digits_rejected(self):
        arabic_indic = "\u0663\u0662\u0660\u0661" * 4
        assert validate_nik(arabic_indic) == ["NIK must be exactly 16 digits"]

    def test_repeated_digit(self):
        assert validate_nik("0000000000000000") == [
            "NIK cannot consist of a single repeated digit"
        ]


class TestNpwp:
    def test_optional(self):
        assert validate_npwp(None) == []
        assert validate_npwp("") == []

    def test_bare_and_formatted(self):
        assert validate_npwp("012345678901234") == []
        assert validate_npwp("01.234.567.8-901.234") == []

    def test_wrong_length(self):
        assert validate_npwp("01234567890") == ["NPWP must be 15 digits"]

    def test_trailing_newline_rejected(self):
        assert validate_npwp("012345678901234\n") == ["NPWP must be 15 digits"]
        assert validate_npwp("01.234.567.8-901.234\n") == ["NPWP must be 15 digits"]

    def test_non_ascii_digits_rejected(self):
        assert validate_npwp("\u0660\u0661" * 7 + "\u0662") == ["NPWP must be 15 digits"]
        assert format_npwp("\u0660" * 15) == "\u0660" * 15

    def test_misplaced_separators(self):
        assert validate_npwp("0123.45.67.8-901.234") == [
            "NPWP format must be XX.XXX.XXX.X-XXX.XXX"
        ]

    def test_format(self):
        assert format_npwp("012345678901234") == "01.234.567.8-901.234"
        assert format_npwp("not-an-npwp") == "not-an-npwp"


class TestEmployeeValidation:
    def test_valid_employee(self, make_employee):
        validate_employee(make_employee(npwp="01.234.567.8-901.234"))

    def test_all_errors_reported(self, make_employee):
        with pytest.raises(InvalidEmployeeError) as exc_info:
            validate_employee(
                make_employee(nik="123", npwp="999", employment_status="intern")
            )

        error = exc_info.value
        assert error.code == "invalid_employee"
        assert len(error.errors) == 3
        assert "EMP001" in str(error)

    def test_unknown_employee_status(self, make_employee):
        with pytest.raises(InvalidEmployeeError, match="Unknown employee status"):
            validate_employee(make_employee(employee_status="on_leave"))


def test_describe_ptkp_status():
    assert describe_ptkp_status("K/2") == "Kawin, 2 tanggungan"
    assert describe_ptkp_status("X/1") == "X/1"
