"""
Unit tests for sender identity resolution.
"""

import pytest
from sender_scan.models import EMPTY_IDENTITY, SenderIdentity
from sender_scan.utils.senders import extract_name_from_email, parse_sender


class TestExtractNameFromEmail:
    """Tests for extract_name_from_email function."""

    def test_dot_separated(self):
        """Test local part split on dots."""
        assert extract_name_from_email("john.doe@x.com") == "John Doe"

    def test_single_letter(self):
        """Test single-character local part."""
        assert extract_name_from_email("a@x.com") == "A"

    def test_empty_local_part(self):
        """Test that an empty local part yields an empty name."""
        assert extract_name_from_email("@x.com") == ""
        assert extract_name_from_email("") == ""

    def test_mixed_separators(self):
        """Test runs of dots, underscores and hyphens."""
        assert extract_name_from_email("john.doe_smith@x.com") == "John Doe Smith"
        assert extract_name_from_email("mary--ann__lee@x.com") == "Mary Ann Lee"
        assert extract_name_from_email("._-jane._-@x.com") == "Jane"

    def test_case_is_normalized(self):
        """Test that fragments are title-cased regardless of input case."""
        assert extract_name_from_email("JOHN.DOE@x.com") == "John Doe"

    def test_digits_do_not_start_words(self):
        """Test that a letter after a digit stays lowercase."""
        assert extract_name_from_email("john2doe@x.com") == "John2doe"
        assert extract_name_from_email("jo3hn.x@x") == "Jo3hn X"
        assert extract_name_from_email("2PAC@x.com") == "2pac"

    def test_punctuation_starts_words(self):
        """Test that letters after punctuation inside a fragment are capitalised."""
        assert extract_name_from_email("o'brien.pat@x.com") == "O'Brien Pat"
        assert extract_name_from_email("john+news@x.com") == "John+News"


class TestParseSender:
    """Tests for parse_sender function."""

    def test_name_and_address(self):
        """Test header with display name."""
        sender = parse_sender("John Doe <John.Doe@Example.COM>")
        assert sender == SenderIdentity("John Doe", "john.doe@example.com")

    def test_quoted_display_name_is_trimmed(self):
        """Test that surrounding whitespace is removed from the display name."""
        sender = parse_sender('"  Support Team  " <support@shop.example>')
        assert sender.display_name == "Support Team"
        assert sender.email_address == "support@shop.example"

    def test_bare_address_derives_name(self):
        """Test that a missing display name is derived from the local part."""
        sender = parse_sender("mary_ann-smith@Example.org")
        assert sender == SenderIdentity("Mary Ann Smith", "mary_ann-smith@example.org")

    def test_angle_address_without_name(self):
        """Test angle-bracketed address without a display name."""
        sender = parse_sender("<jane.roe@example.com>")
        assert sender == SenderIdentity("Jane Roe", "jane.roe@example.com")

    def test_angle_bracket_inside_quoted_name(self):
        """Test that brackets within a quoted display name are not counted."""
        sender = parse_sender('"Sales <EU>" <sales@example.com>')
        assert sender == SenderIdentity("Sales <EU>", "sales@example.com")

    def test_encoded_display_name(self):
        """Test RFC 2047 encoded display names are decoded."""
        sender = parse_sender("=?utf-8?q?J=C3=B6rg_M=C3=BCller?= <joerg@example.de>")
        assert sender.display_name == "Jörg Müller"
        assert sender.email_address == "joerg@example.de"

    @pytest.mark.parametrize("header", [
        "Not An Address",
        "",
        "   ",
        "@x.com",
        "<@x.com>",
        "john@",
        "first@example.com, second@example.com",
        "John <john@x.com",
        "John john@x.com>",
    ])
    def test_unusable_headers_yield_empty_identity(self, header):
        """Test that unparsable headers degrade to the empty identity."""
        sender = parse_sender(header)
        assert sender == EMPTY_IDENTITY
        assert sender.is_empty

    def test_never_raises(self):
        """Test garbage input does not raise."""
        for header in ["<<<>>>", "\x00\x01", '"unterminated <a@b.c', "=?bogus?x?abc?="]:
            assert isinstance(parse_sender(header), SenderIdentity)
