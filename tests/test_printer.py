from decimal import Decimal

import pytest
from PIL import ImageFont

from restaurant_pos import printer
from restaurant_pos.cart import EMPTY_CART, add_line
from restaurant_pos.config import PRINTER_WIDTH_PX
from restaurant_pos.models import Order
from restaurant_pos.orders import SubmittedOrder


@pytest.fixture
def submitted(make_item):
    tea = make_item("Mint Tea", "8.00")
    fries = make_item("French Fries", "10.00")
    cart = add_line(add_line(add_line(EMPTY_CART, tea), tea), fries)
    order = Order(id="0123456789abcdef", total=Decimal("26.00"), created_at="2026-10-19T12:34:56.000000+00:00")
    return SubmittedOrder(order=order, items=[], lines=list(cart))


def test_receipt_lines(submitted):
    lines = printer.receipt_lines(submitted)

    assert lines[0] == "Order 01234567"
    assert lines[1] == "2026-10-19 12:34"
    assert "Mint Tea x2" in lines
    assert "    16.00 DH" in lines
    assert lines[-1] == "TOTAL 26.00 DH"


def test_render_receipt_image_is_printer_width(submitted):
    lines = printer.receipt_lines(submitted)

    image = printer.render_receipt_image(lines, ImageFont.load_default())

    assert image.mode == "1"
    assert image.width == PRINTER_WIDTH_PX
    assert image.height >= len(lines)


def test_font_resolution_honours_override(tmp_path, monkeypatch):
    font = tmp_path / "receipt.ttf"
    font.write_bytes(b"")
    monkeypatch.setenv("POS_PRINTER_FONT_PATH", str(font))

    assert printer.resolve_printer_font_path() == str(font)


def test_font_resolution_fails_loudly(monkeypatch):
    monkeypatch.setenv("POS_PRINTER_FONT_PATH", "/nonexistent/font.ttf")
    monkeypatch.setattr(printer, "PRINTER_FONT_PATH", "/nonexistent/default.ttf")
    monkeypatch.setattr(printer, "_LINUX_FONT_FALLBACKS", ())

    with pytest.raises(RuntimeError, match="No usable printer font"):
        printer.resolve_printer_font_path()


def test_font_resolution_reads_given_environ_and_skips_duplicates(tmp_path, monkeypatch):
    font = tmp_path / "fallback.ttf"
    font.write_bytes(b"")
    monkeypatch.setattr(printer, "PRINTER_FONT_PATH", "/nonexistent/default.ttf")
    monkeypatch.setattr(printer, "_LINUX_FONT_FALLBACKS", ("/nonexistent/default.ttf", str(font)))

    assert printer.resolve_printer_font_path({"POS_PRINTER_FONT_PATH": "  "}) == str(font)

    monkeypatch.setattr(printer, "_LINUX_FONT_FALLBACKS", ("/nonexistent/default.ttf",))
    with pytest.raises(RuntimeError) as excinfo:
        printer.resolve_printer_font_path({})
    assert str(excinfo.value).count("/nonexistent/default.ttf") == 1
