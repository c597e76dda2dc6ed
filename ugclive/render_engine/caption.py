"""
Caption overlay. The title is drawn once with Pillow onto a transparent full-frame PNG,
which the renderer composites over the video with ffmpeg's ``overlay`` filter.
"""

import logging
import os
from pathlib import Path
from typing import List, Tuple

from PIL import Image, ImageDraw, ImageFont

from .utils import ensure_dir

logger = logging.getLogger(__name__)

FONT_SIZE = 64
LINE_HEIGHT = int(FONT_SIZE * 1.2)
STROKE_WIDTH = 4
# Full-width block: 20px outer padding plus 12px around the text itself.
SIDE_PADDING = 20 + 12
FALLBACK_FONTS = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf")


def load_font(size: int = FONT_SIZE):
    candidates = [os.environ.get("CAPTION_FONT_FILE")] + list(FALLBACK_FONTS)
    for name in candidates:
        if not name:
            continue
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    logger.debug("No TrueType caption font found, using Pillow's default font")
    return ImageFont.load_default(size=size)


def wrap_lines(text: str, font, max_width: int) -> List[str]:
    """Greedy word wrap; words wider than a line are broken with a hyphen."""
    draw = ImageDraw.Draw(Image.new("RGBA", (10, 10)))

    def _fits(candidate: str) -> bool:
        return draw.textlength(candidate, font=font) <= max_width

    def _split_word(word: str) -> List[str]:
        if _fits(word):
            return [word]
        chunks: List[str] = []
        chunk = ""
        for char in word:
            if _fits(f"{chunk}{char}-"):
                chunk += char
                continue
            if chunk:
                chunks.append(f"{chunk}-")
            chunk = char
        if chunk:
            chunks.append(chunk)
        return chunks

    lines: List[str] = []
    for paragraph in text.splitlines() or [""]:
        current = ""
        for raw_word in paragraph.split():
            for word in _split_word(raw_word):
                trial = f"{current} {word}".strip()
                if _fits(trial) or not current:
                    current = trial
                    continue
                lines.append(current)
                current = word
        if current:
            lines.append(current)
    return lines


def block_top(position: str, block_height: int, frame_height: int) -> int:
    """Top edge of the caption block for a text position."""
    if position == "top":
        return int(frame_height * 0.10)
    if position == "center":
        return int(frame_height * 0.50)
    return int(frame_height * 0.90) - block_height


def caption_layout(text: str, position: str, width: int, height: int, font) -> Tuple[List[str], int]:
    lines = wrap_lines(text or "", font, width - 2 * SIDE_PADDING)
    top = block_top(position, len(lines) * LINE_HEIGHT, height)
    return lines, top


def render_caption_png(text: str, position: str, path: str, width: int, height: int) -> str:
    """White bold text with a black outline, horizontally centred, on a transparent canvas."""
    ensure_dir(Path(path).parent)
    font = load_font()
    lines, top = caption_layout(text, position, width, height, font)

    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)
    y = top
    for line in lines:
        line_width = draw.textlength(line, font=font)
        draw.text(
            ((width - line_width) / 2, y),
            line,
            font=font,
            fill=(255, 255, 255, 255),
            stroke_width=STROKE_WIDTH,
            stroke_fill=(0, 0, 0, 255),
        )
        y += LINE_HEIGHT
    canvas.save(path, format="PNG")
    return path
