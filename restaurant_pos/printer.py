"""Optional receipt printing on a USB ESC/POS thermal printer."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Mapping

from restaurant_pos.cart import line_total
from restaurant_pos.config import (
    CURRENCY_LABEL,
    PRINTER_FONT_PATH,
    PRINTER_FONT_SIZE,
    PRINTER_LEFT_INDENT_PX,
    PRINTER_USB_PRODUCT_ID,
    PRINTER_USB_VENDOR_ID,
    PRINTER_WIDTH_PX,
)
from restaurant_pos.orders import SubmittedOrder

logger = logging.getLogger(__name__)

_FONT_OVERRIDE_ENV = "POS_PRINTER_FONT_PATH"
_LINUX_FONT_FALLBACKS = (
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/noto/NotoSans-Regular.ttf",
    "/usr/share/fonts/liberation/LiberationSans-Regular.ttf",
)
_LINE_PADDING_PX = 8
_RULE = "-" * 24


def receipt_lines(submitted: SubmittedOrder) -> list[str]:
    """Plain-text receipt body: header, one row per line, total."""
    order = submitted.order
    lines = [f"Order {order.id[:8]}"]
    if order.created_at:
        lines.append(order.created_at[:16].replace("T", " "))
    lines.append(_RULE)
    for line in submitted.lines:
        lines.append(f"{line.item.name} x{line.quantity}")
        lines.append(f"    {line_total(line):.2f} {CURRENCY_LABEL}")
    lines.append(_RULE)
    lines.append(f"TOTAL {order.total:.2f} {CURRENCY_LABEL}")
    return lines


def _font_candidates(environ: Mapping[str, str]) -> Iterator[str]:
    yield environ.get(_FONT_OVERRIDE_ENV, "").strip()
    yield PRINTER_FONT_PATH
    yield from _LINUX_FONT_FALLBACKS


def resolve_printer_font_path(environ: Mapping[str, str] | None = None) -> str:
    """First existing font file: the $POS_PRINTER_FONT_PATH override, the configured path, then common Linux locations."""
    tried = list(dict.fromkeys(c for c in _font_candidates(os.environ if environ is None else environ) if c))
    found = next((c for c in tried if Path(c).is_file()), None)
    if found is None:
        raise RuntimeError(
            f"No usable printer font found; point {_FONT_OVERRIDE_ENV} at a .ttf or .otf file "
            f"(looked in {', '.join(tried)})"
        )
    return found


def check_printer_dependencies() -> tuple[bool, str]:
    """Check whether printer dependencies are importable."""
    try:
        from escpos.printer import Usb  # noqa: F401
        from PIL import ImageFont

        ImageFont.truetype(resolve_printer_font_path(), PRINTER_FONT_SIZE)
    except Exception as exc:
        return (False, f"Printer unavailable: {exc}")
    return (True, "Printer ready")


def render_receipt_image(lines: list[str], font: object) -> object:
    """Stack receipt lines into one 1-bit image the printer width wide."""
    from PIL import Image, ImageDraw

    measure = ImageDraw.Draw(Image.new("1", (1, 1), color=1))
    boxes = [measure.textbbox((0, 0), line or " ", font=font) for line in lines]
    slot_px = max((box[3] - box[1] for box in boxes), default=0) + _LINE_PADDING_PX

    img = Image.new("1", (PRINTER_WIDTH_PX, max(1, slot_px * len(lines))), color=1)
    draw = ImageDraw.Draw(img)
    for idx, (line, box) in enumerate(zip(lines, boxes)):
        # Offset by bbox top so descenders are not clipped.
        y = idx * slot_px + (slot_px - (box[3] - box[1])) // 2 - box[1]
        draw.text((PRINTER_LEFT_INDENT_PX, y), line, font=font, fill=0)
    return img


def print_receipt(submitted: SubmittedOrder) -> None:
    """Print the receipt for a saved order and cut the ticket."""
    try:
        from escpos.printer import Usb
        from PIL import ImageFont
    except Exception as exc:
        raise RuntimeError(f"Printer dependencies unavailable: {exc}") from exc

    font = ImageFont.truetype(resolve_printer_font_path(), PRINTER_FONT_SIZE)
    image = render_receipt_image(receipt_lines(submitted), font)

    printer = Usb(PRINTER_USB_VENDOR_ID, PRINTER_USB_PRODUCT_ID)
    try:
        printer.image(image)
        printer.cut()
    finally:
        printer.close()
    logger.info("Printed receipt for order %s", submitted.order.id)
