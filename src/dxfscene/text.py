"""
Text

Types describing text items, the measurement interface used for layout,
and a simple measurer based on an average character advance.

Layout boxes are in a y-down frame with the origin at the top left corner
of the box. The attachment point selects the spot on that box which sits
on the insertion point.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import List, Optional, Protocol, Tuple

import numpy as np

from .transform import DirectIsometry, translate


class Alignment(Enum):
    """Horizontal alignment of lines inside a text box"""
    START = "start"
    END = "end"
    LEFT = "left"
    MIDDLE = "middle"
    RIGHT = "right"


class AttachmentPoint(IntEnum):
    """Anchor of a text box, numbered as the DXF MTEXT attachment point"""
    TOP_LEFT = 1
    TOP_CENTER = 2
    TOP_RIGHT = 3
    MIDDLE_LEFT = 4
    MIDDLE_CENTER = 5
    MIDDLE_RIGHT = 6
    BOTTOM_LEFT = 7
    BOTTOM_CENTER = 8
    BOTTOM_RIGHT = 9

    @property
    def alignment(self) -> Alignment:
        """Line alignment implied by the attachment column."""
        return (Alignment.LEFT, Alignment.MIDDLE, Alignment.RIGHT)[(self - 1) % 3]

    def select(self, width: float, height: float) -> Tuple[float, float]:
        """
        Offset of the anchor inside a box of the given size.

        Args:
            width: Box width
            height: Box height

        Returns:
            (x, y) of the anchor relative to the top left corner
        """
        column = (self - 1) % 3
        row = (self - 1) // 3
        return width * column / 2.0, height * row / 2.0


@dataclass(frozen=True)
class TextStyle:
    """Font attributes of a text item"""
    font_size: float = 1.0
    line_height: float = 1.0
    width_factor: float = 1.0
    oblique_angle: float = 0.0
    font_family: str = "sans-serif"

    def with_font_size(self, font_size: float) -> "TextStyle":
        return replace(self, font_size=font_size)


@dataclass
class LineBox:
    """One laid out line with its glyph positions"""
    text: str
    x: float
    y: float
    width: float
    height: float
    baseline: float
    glyph_offsets: List[float] = field(default_factory=list)


@dataclass
class TextLayout:
    lines: List[LineBox]
    width: float
    height: float


class TextMeasurer(Protocol):
    """Text shaping and layout service"""

    def layout(self, text: str, style: TextStyle, max_inline_size: Optional[float],
               alignment: Alignment) -> TextLayout:
        ...


class EstimatedTextMeasurer:
    """
    Measurer using a fixed average advance per character.

    Good enough for bounding boxes of CAD annotations, which mostly use
    simple stroke fonts. Lines break on newlines and, when a maximum inline
    size is given, greedily between words.
    """

    def __init__(self, advance_ratio: float = 0.5, ascent_ratio: float = 0.8):
        self.advance_ratio = advance_ratio
        self.ascent_ratio = ascent_ratio

    def advance(self, style: TextStyle) -> float:
        return style.font_size * self.advance_ratio * style.width_factor

    def _wrap(self, paragraph: str, advance: float,
              max_inline_size: Optional[float]) -> List[str]:
        if not max_inline_size or advance <= 0:
            return [paragraph]
        lines: List[str] = []
        current = ""
        for word in paragraph.split(" "):
            candidate = word if not current else current + " " + word
            if current and len(candidate) * advance > max_inline_size:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)
        return lines

    def layout(self, text: str, style: TextStyle, max_inline_size: Optional[float] = None,
               alignment: Alignment = Alignment.START) -> TextLayout:
        advance = self.advance(style)
        line_height = style.font_size * style.line_height

        rows: List[str] = []
        for paragraph in text.split("\n"):
            rows.extend(self._wrap(paragraph, advance, max_inline_size))

        widths = [len(row) * advance for row in rows]
        box_width = max_inline_size if max_inline_size else max(widths, default=0.0)

        lines = []
        for i, (row, width) in enumerate(zip(rows, widths)):
            if alignment == Alignment.MIDDLE:
                x = (box_width - width) / 2.0
            elif alignment in (Alignment.RIGHT, Alignment.END):
                x = box_width - width
            else:
                x = 0.0
            y = i * line_height
            lines.append(LineBox(
                text=row,
                x=x,
                y=y,
                width=width,
                height=line_height,
                baseline=y + style.font_size * self.ascent_ratio,
                glyph_offsets=[x + j * advance for j in range(len(row))],
            ))

        return TextLayout(lines, max(widths, default=0.0), len(rows) * line_height)


def layout_size(layout: TextLayout, max_inline_size: Optional[float]) -> Tuple[float, float]:
    """Size of the text box: the wrap width when set, else the widest line."""
    return (max_inline_size or layout.width), layout.height


def placement_transform(world: np.ndarray, insertion: DirectIsometry,
                        attachment_point: AttachmentPoint,
                        width: float, height: float) -> np.ndarray:
    """
    Transform from text box coordinates to the world frame.

    The box is shifted so the attachment point is at its origin, then
    placed by the insertion isometry and the item's world transform.
    """
    ax, ay = attachment_point.select(width, height)
    return world @ insertion.to_affine() @ translate(-ax, -ay)
