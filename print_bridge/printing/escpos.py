"""
ESC/POS command vocabulary and text layout helpers.

The byte values target the Star mC-Print3 in ESC/POS emulation and are kept
as plain constants so documents can be checked byte for byte. TicketBuilder
writes them into a python-escpos Dummy printer, which only collects output.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from escpos.constants import ESC, GS
from escpos.printer import Dummy

LF = b"\n"

INIT = ESC + b"@"

BOLD_ON = ESC + b"E\x01"
BOLD_OFF = ESC + b"E\x00"
UNDERLINE_ON = ESC + b"-\x01"
UNDERLINE_OFF = ESC + b"-\x00"

DOUBLE_HEIGHT_ON = GS + b"!\x01"
DOUBLE_WIDTH_ON = GS + b"!\x10"
DOUBLE_SIZE_ON = GS + b"!\x11"
NORMAL_SIZE = GS + b"!\x00"

ALIGN_LEFT = ESC + b"a\x00"
ALIGN_CENTER = ESC + b"a\x01"
ALIGN_RIGHT = ESC + b"a\x02"

CUT_PAPER = GS + b"VA\x03"
PARTIAL_CUT = GS + b"VB\x00"

_ALIGN = {"left": ALIGN_LEFT, "center": ALIGN_CENTER, "right": ALIGN_RIGHT}
_SIZE = {
    "normal": NORMAL_SIZE,
    "2h": DOUBLE_HEIGHT_ON,
    "2w": DOUBLE_WIDTH_ON,
    "2x": DOUBLE_SIZE_ON,
}

Amount = Union[Decimal, int, float, str]


def feed_lines(n: int) -> bytes:
    """ESC d n: print the buffer and feed n lines (0-255)."""
    return ESC + b"d" + bytes([max(0, min(255, int(n)))])


def text(s: str) -> bytes:
    return s.encode("utf-8")


def line(s: str) -> bytes:
    return text(s) + LF


def separator(char: str = "-", width: int = 48) -> bytes:
    return line(char * width)


def format_currency(amount: Amount, symbol: str = "$") -> str:
    """
    Fixed two-decimal string with a leading symbol: 12.5 -> "$12.50".
    """
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if value < 0:
        return f"-{symbol}{-value}"
    return f"{symbol}{value}"


def pad_line(left: str, right: str, width: int = 48) -> str:
    """
    Left-justify `left` and right-justify `right` in `width` columns.

    When there is no room for at least one space between them the label is
    truncated; the value is always printed in full.
    """
    padding = width - len(left) - len(right)
    if padding <= 0:
        return left[: max(0, width - len(right) - 1)] + " " + right
    return left + " " * padding + right


def format_datetime(dt: datetime) -> str:
    """
    MM/DD/YYYY, hh:mm AM|PM regardless of the process locale.
    """
    hour12 = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{dt.month:02d}/{dt.day:02d}/{dt.year:04d}, {hour12:02d}:{dt.minute:02d} {meridiem}"


def format_time(dt: datetime) -> str:
    hour12 = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{hour12:02d}:{dt.minute:02d} {meridiem}"


class TicketBuilder:
    """
    Chainable writer for one printed document.

        doc = TicketBuilder().init().align("center").bold().line("ORDER").bold(False)
        payload = doc.output
    """

    def __init__(self) -> None:
        self._printer = Dummy()

    def raw(self, data: bytes) -> "TicketBuilder":
        self._printer._raw(data)
        return self

    def init(self) -> "TicketBuilder":
        return self.raw(INIT)

    def bold(self, on: bool = True) -> "TicketBuilder":
        return self.raw(BOLD_ON if on else BOLD_OFF)

    def underline(self, on: bool = True) -> "TicketBuilder":
        return self.raw(UNDERLINE_ON if on else UNDERLINE_OFF)

    def size(self, mode: str = "normal") -> "TicketBuilder":
        """mode: normal | 2h (double height) | 2w (double width) | 2x (both)."""
        try:
            return self.raw(_SIZE[mode])
        except KeyError:
            raise ValueError(f"Unknown text size: {mode!r}") from None

    def align(self, where: str = "left") -> "TicketBuilder":
        try:
            return self.raw(_ALIGN[where])
        except KeyError:
            raise ValueError(f"Unknown alignment: {where!r}") from None

    def text(self, s: str) -> "TicketBuilder":
        return self.raw(text(s))

    def line(self, s: str = "") -> "TicketBuilder":
        return self.raw(line(s))

    def separator(self, char: str, width: int) -> "TicketBuilder":
        return self.raw(separator(char, width))

    def feed(self, n: int = 1) -> "TicketBuilder":
        """n bare line feeds."""
        return self.raw(LF * n)

    def feed_lines(self, n: int) -> "TicketBuilder":
        return self.raw(feed_lines(n))

    def cut(self, partial: bool = False) -> "TicketBuilder":
        return self.raw(PARTIAL_CUT if partial else CUT_PAPER)

    @property
    def output(self) -> bytes:
        return self._printer.output


__all__ = [
    "ALIGN_CENTER",
    "ALIGN_LEFT",
    "ALIGN_RIGHT",
    "BOLD_OFF",
    "BOLD_ON",
    "CUT_PAPER",
    "DOUBLE_HEIGHT_ON",
    "DOUBLE_SIZE_ON",
    "DOUBLE_WIDTH_ON",
    "INIT",
    "LF",
    "NORMAL_SIZE",
    "PARTIAL_CUT",
    "TicketBuilder",
    "UNDERLINE_OFF",
    "UNDERLINE_ON",
    "feed_lines",
    "format_currency",
    "format_datetime",
    "format_time",
    "line",
    "pad_line",
    "separator",
    "text",
]
