"""Unit tests for shared gateway helpers."""

import pytest

from src.core.exceptions import ParseError
from src.gateways.base import decode_callback_body, parse_amount, sanitize_display_name
from src.models.gateway import RawCallback


class TestDecodeCallbackBody:
    """Tests for decode_callback_body."""

    def test_form_body(self) -> None:
        raw = RawCallback(body=b"mul_no=1&pay_state=4&memo=", content_type="application/x-www-form-urlencoded")
        assert decode_callback_body(raw) == {"mul_no": "1", "pay_state": "4", "memo": ""}

    def test_json_body_without_content_type(self) -> None:
        raw = RawCallback(body=b'  {"id": "evt_1"}  ')
        assert decode_callback_body(raw) == {"id": "evt_1"}

    def test_json_array_is_rejected(self) -> None:
        with pytest.raises(ParseError):
            decode_callback_body(RawCallback(body=b"[1, 2]", content_type="application/json"))

    @pytest.mark.parametrize("body", [b"", b"   ", b"not a callback", b"\xc3\x28"])
    def test_unusable_bodies(self, body: bytes) -> None:
        with pytest.raises(ParseError):
            decode_callback_body(RawCallback(body=body))


class TestSanitizeDisplayName:
    """Tests for sanitize_display_name."""

    def test_removes_control_and_forbidden_characters(self) -> None:
        assert sanitize_display_name("Rain\x00fall & Wind=", 50, forbidden="&=") == "Rainfall Wind"

    def test_truncates(self) -> None:
        assert sanitize_display_name("abcdefghij", 4) == "abcd"

    def test_collapses_whitespace(self) -> None:
        assert sanitize_display_name("  a   b  c ", 20) == "a b c"


class TestParseAmount:
    """Tests for parse_amount."""

    def test_values(self) -> None:
        assert parse_amount("50000") == 50000
        assert parse_amount("50,000") == 50000
        assert parse_amount(1200) == 1200
        assert parse_amount(None) is None
        assert parse_amount("") is None
        assert parse_amount("12.5") is None
