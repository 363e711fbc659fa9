"""
Unit Tests for the Receipt Text Extractor

Tests:
- Block splitting and payload selection
- Price detection (first matching token)
- Dropped blocks (no price, scanner noise)
- Pluggable price matchers

Run with: pytest tests/test_text_extractor.py -v
"""

import logging

import pytest

from ocr.exceptions import FileError
from ocr.models import ExtractedItem
from ocr.services.text_extractor import (
    PriceMatcher,
    RegexPriceMatcher,
    TextExtractor,
    block_payload,
    extract_items,
    split_blocks,
)


def wrap_blocks(*lines: str) -> str:
    """Render item lines as an export with a trailing whole-receipt block."""
    body = "<receipt>"
    for line in lines:
        body += f"<item><recognizedText><![CDATA[#1\n{line}]]></recognizedText></item>"
    body += "<recognizedText><![CDATA[whole receipt]]></recognizedText></receipt>"
    return body


class TestSplitBlocks:
    """Test block splitting."""

    def test_drops_header_and_trailing_fragments(self):
        blocks = split_blocks(wrap_blocks("A 1.00", "B 2.00"))

        assert len(blocks) == 2
        assert "A 1.00" in blocks[0]
        assert "B 2.00" in blocks[1]

    def test_text_without_blocks(self):
        assert split_blocks("no recognized text here") == []


class TestBlockPayload:
    """Test payload line selection."""

    def test_second_line_is_payload(self):
        assert block_payload("<![CDATA[#27\nDragon Roll $10.99]]></") == "Dragon Roll $10.99"

    def test_windows_line_endings(self):
        assert block_payload("<![CDATA[#27\r\nDragon Roll $10.99\r\n]]></") == "Dragon Roll $10.99"

    def test_block_without_cdata(self):
        assert block_payload("<text>Dragon Roll $10.99</text></") is None

    def test_single_line_block(self):
        assert block_payload("<![CDATA[Dragon Roll $10.99]]></") is None


class TestRegexPriceMatcher:
    """Test the default price pattern."""

    @pytest.mark.parametrize("token", ["$6.50", "12.99", "3.5", "$0.5", "100.00"])
    def test_accepts_prices(self, token):
        assert RegexPriceMatcher().match(token) == token

    @pytest.mark.parametrize("token", ["6", "$6", "6.505", ".50", "6.50$", "x1", "#27", "6,50"])
    def test_rejects_non_prices(self, token):
        assert RegexPriceMatcher().match(token) is None


class TestExtractItems:
    """Test item extraction."""

    def test_extracts_fixture_items(self, receipt_result_text):
        items = extract_items(receipt_result_text)

        assert items == [
            ExtractedItem(description="Dragon Roll ", price="$10.99"),
            ExtractedItem(description="Curry Rice ", price="6.50"),
            ExtractedItem(description="Thai Iced Tea ", price="$3.5"),
        ]

    def test_single_block(self):
        items = extract_items(wrap_blocks("Dragon Roll $10.99"))

        assert items == [ExtractedItem(description="Dragon Roll ", price="$10.99")]

    def test_first_price_token_wins(self):
        items = extract_items(wrap_blocks("Combo 2.00 upgrade 3.50"))

        assert items == [ExtractedItem(description="Combo ", price="2.00")]

    def test_text_after_price_dropped(self):
        items = extract_items(wrap_blocks("Thai Iced Tea $3.5 x1"))

        assert items == [ExtractedItem(description="Thai Iced Tea ", price="$3.5")]

    def test_description_ends_at_first_occurrence_of_price(self):
        items = extract_items(wrap_blocks("Item12.50 12.50"))

        assert items == [ExtractedItem(description="Item", price="12.50")]

    def test_noise_marker_after_price_ignored(self):
        items = extract_items(wrap_blocks("Tea 2.00 **Sb8T0TIL"))

        assert items == [ExtractedItem(description="Tea ", price="2.00")]

    def test_block_without_price_dropped_and_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="ocr.services.text_extractor"):
            items = extract_items(wrap_blocks("LUNCH SPECIALS", "Tea 2.00"))

        assert items == [ExtractedItem(description="Tea ", price="2.00")]
        assert "LUNCH SPECIALS" in caplog.text

    def test_noise_marker_dropped(self):
        items = extract_items(wrap_blocks("**Sb8T0TIL 2.00", "Tea 2.00"))

        assert items == [ExtractedItem(description="Tea ", price="2.00")]

    def test_extraction_is_repeatable(self, receipt_result_text):
        extractor = TextExtractor()

        assert extractor.extract_items(receipt_result_text) == extractor.extract_items(receipt_result_text)

    def test_empty_text(self):
        assert extract_items("") == []


class TestCustomPriceMatcher:
    """Test pluggable price matching."""

    def test_regex_matcher_with_other_pattern(self):
        matcher = RegexPriceMatcher(r"^[0-9]+,[0-9]{2}€$")

        items = extract_items(wrap_blocks("Kaffee 2,40€"), price_matcher=matcher)

        assert items == [ExtractedItem(description="Kaffee ", price="2,40€")]

    def test_custom_matcher_class(self):
        class WholeDollarMatcher(PriceMatcher):
            def match(self, token):
                if token.startswith("$") and token[1:].isdigit():
                    return token
                return None

        extractor = TextExtractor(price_matcher=WholeDollarMatcher())

        assert extractor.extract_items(wrap_blocks("Burger $12", "Tea 2.00")) == [
            ExtractedItem(description="Burger ", price="$12"),
        ]


class TestExtractItemsFromFile:
    """Test reading the downloaded result."""

    def test_reads_file(self, tmp_path):
        path = tmp_path / "T1.txt"
        path.write_text(wrap_blocks("Tea 2.00"), encoding="utf-8")

        assert TextExtractor().extract_items_from_file(path) == [
            ExtractedItem(description="Tea ", price="2.00"),
        ]

    def test_missing_file_raises_file_error(self, tmp_path):
        with pytest.raises(FileError):
            TextExtractor().extract_items_from_file(tmp_path / "missing.txt")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
