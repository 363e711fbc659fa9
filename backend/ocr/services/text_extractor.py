"""
Receipt Text Extractor

Turns the exported recognition result into {description, price} items.

The export is a sequence of text blocks, each wrapped as

    <recognizedText><![CDATA[<first line>
    <item line>]]></recognizedText>

Splitting on the marker leaves the document header before the first block
and the whole-receipt text plus footer after the last item block; those
are discarded. What remains alternates block content / marker residue.

Each item line is split on whitespace; the first token the price matcher
accepts becomes the price, and the text before it is the description.
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

from ocr.exceptions import FileError
from ocr.models import ExtractedItem

logger = logging.getLogger(__name__)

RECOGNIZED_TEXT_MARKER = "recognizedText>"
CDATA_OPEN = "[CDATA["
CDATA_CLOSE = "]]></"

# Artifact the recognition engine emits on some receipts; never a real item
NOISE_MARKER = "**Sb8T0TIL"

# Index of the item line inside a block
PAYLOAD_LINE = 1


class PriceMatcher(ABC):
    """Decides whether a single token is a price."""

    @abstractmethod
    def match(self, token: str) -> Optional[str]:
        """Return the price text for token, or None if it is not a price."""
        pass


class RegexPriceMatcher(PriceMatcher):
    """Matches `$6.50`, `12.99`, `3.5`: optional dollar sign, one or two decimals."""

    DEFAULT_PATTERN = r"^\$?[0-9]+\.[0-9][0-9]?$"

    def __init__(self, pattern: str = DEFAULT_PATTERN):
        self.pattern = re.compile(pattern)

    def match(self, token: str) -> Optional[str]:
        if self.pattern.match(token):
            return token
        return None


def split_blocks(text: str) -> List[str]:
    """Return the raw content of every item block, in receipt order."""
    fragments = text.split(RECOGNIZED_TEXT_MARKER)
    # header before the first marker, whole-receipt text and footer after the last
    fragments = fragments[1:-2]
    return fragments[::2]


def block_payload(block: str) -> Optional[str]:
    """Return the item line of a block, or None when the block has none."""
    if CDATA_OPEN not in block:
        return None

    inner = block.split(CDATA_OPEN, 1)[1].split(CDATA_CLOSE, 1)[0]
    lines = inner.split("\n")
    if len(lines) <= PAYLOAD_LINE:
        return None
    return lines[PAYLOAD_LINE].rstrip("\r") or None


class TextExtractor:
    """Parses recognized receipt text into an ordered list of items."""

    def __init__(self, price_matcher: Optional[PriceMatcher] = None):
        self.price_matcher = price_matcher or RegexPriceMatcher()

    def find_price(self, line: str) -> Optional[str]:
        for token in line.split():
            price = self.price_matcher.match(token)
            if price:
                return price
        return None

    def parse_block(self, block: str) -> Optional[ExtractedItem]:
        payload = block_payload(block)
        if payload is None:
            return None

        price = self.find_price(payload)
        if price is None:
            # TODO: decide whether priceless lines are section headers or lost items
            logger.info(f"Dropped block without a price: {payload!r}")
            return None

        # only the text before the price describes the item
        description = payload.split(price, 1)[0]
        if NOISE_MARKER in description:
            logger.debug(f"Dropped scanner noise block: {payload!r}")
            return None

        return ExtractedItem(description=description, price=price)

    def extract_items(self, text: str) -> List[ExtractedItem]:
        """Extract every priced item from the exported result text."""
        items = []
        for block in split_blocks(text):
            item = self.parse_block(block)
            if item is not None:
                items.append(item)

        logger.info(f"Extracted {len(items)} items")
        return items

    def extract_items_from_file(self, path: Union[str, Path]) -> List[ExtractedItem]:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileError(f"Cannot read recognition result {path}: {e}")
        return self.extract_items(text)


def extract_items(text: str, price_matcher: Optional[PriceMatcher] = None) -> List[ExtractedItem]:
    """Module-level convenience wrapper around TextExtractor."""
    return TextExtractor(price_matcher).extract_items(text)
