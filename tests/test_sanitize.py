"""
Unit tests for request input sanitation.
"""

import pytest

from core.exceptions import BillingInputError
from routes.sanitize import optional_int, sanitize_fields, sanitize_text


class TestSanitizeText:

    def test_strips_markup_and_whitespace(self):
        assert sanitize_text("  <b>ORD1</b> ") == "ORD1"

    def test_truncates(self):
        assert sanitize_text("abcdef", max_length=3) == "abc"

    def test_empty_values(self):
        assert sanitize_text(None) == ""
        assert sanitize_text("") == ""


def test_sanitize_fields_walks_nested_values():
    fields = {
        "particulars": "<i>Logo</i>",
        "pcs": 50,
        "items": [{"particulars": "<script>x</script>Sleeve", "isFusing": False}],
    }

    cleaned = sanitize_fields(fields, max_length=255)

    assert cleaned["particulars"] == "Logo"
    assert cleaned["pcs"] == 50
    assert "<script>" not in cleaned["items"][0]["particulars"]
    assert cleaned["items"][0]["isFusing"] is False


class TestOptionalInt:

    def test_missing_is_none(self):
        assert optional_int({}, "expectedVersion") is None

    def test_numeric_text_is_read(self):
        assert optional_int({"expectedVersion": "3"}, "expectedVersion") == 3

    @pytest.mark.parametrize("value", ["latest", True, [1]])
    def test_invalid_values_raise(self, value):
        with pytest.raises(BillingInputError):
            optional_int({"expectedVersion": value}, "expectedVersion")
