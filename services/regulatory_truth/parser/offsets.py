"""
UTF-16 offset helpers.

Stored node offsets count UTF-16 code units so that re-slicing is
unambiguous for any consumer. Python strings index code points, which
differ only for characters outside the Basic Multilingual Plane.
"""

from bisect import bisect_left


_SURROGATE_PASS = "surrogatepass"


def utf16_length(text: str) -> int:
    return len(text.encode("utf-16-le", _SURROGATE_PASS)) // 2


class Utf16Index:
    """Converts between code-point indexes and UTF-16 offsets of one text."""

    def __init__(self, text: str) -> None:
        self.text = text
        # Code-point positions of characters that take two UTF-16 units
        self._astral = [i for i, ch in enumerate(text) if ord(ch) > 0xFFFF]
        self.length = len(text) + len(self._astral)

    def to_utf16(self, index: int) -> int:
        return index + bisect_left(self._astral, index)

    def to_index(self, offset: int) -> int:
        """
        Code-point index for a UTF-16 offset.

        Raises:
            ValueError: offset splits a surrogate pair or is out of range
        """
        if offset < 0 or offset > self.length:
            raise ValueError(f"UTF-16 offset {offset} outside [0, {self.length}]")

        low, high = 0, len(self.text)
        while low < high:
            mid = (low + high) // 2
            if self.to_utf16(mid) < offset:
                low = mid + 1
            else:
                high = mid
        if self.to_utf16(low) != offset:
            raise ValueError(f"UTF-16 offset {offset} splits a surrogate pair")
        return low

    def slice(self, start: int, end: int) -> str:
        return self.text[self.to_index(start) : self.to_index(end)]


def slice_utf16(text: str, start: int, end: int) -> str:
    """
    Substring by UTF-16 offsets.

    A range that splits a surrogate pair yields lone surrogates rather than
    raising, so comparisons against the expected text simply fail.
    """
    encoded = text.encode("utf-16-le", _SURROGATE_PASS)
    return encoded[start * 2 : end * 2].decode("utf-16-le", _SURROGATE_PASS)
