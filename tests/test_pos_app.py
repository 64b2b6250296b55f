from decimal import Decimal

import pytest

from restaurant_pos.backend import MENU_ITEMS, ORDER_ITEMS, ORDERS
from restaurant_pos.error_screen import ConnectionErrorScreen
from restaurant_pos.pos_app import PosApp


async def _settle(app, pilot):
    await app.workers.wait_for_complete()
    await pilot.pause()


@pytest.mark.anyio
async def test_add_and_confirm_order(seeded_backend):
    app = PosApp(seeded_backend)
    async with app.run_test() as pilot:
        await pilot.pause()
        assert not app.menu_reader.loading
        assert app.menu_reader.items[0].name == "Coffee"

        await pilot.press("enter", "enter", "down", "plus")
        assert [(line.item.name, line.quantity) for line in app.till.cart] == [("Coffee", 2), ("Tea", 1)]
        assert app.till.total == Decimal("28.00")

        await pilot.press("ctrl+s")
        await _settle(app, pilot)

        assert app.till.is_empty
        assert [row["total"] for row in seeded_backend.inserted[ORDERS]] == [Decimal("28.00")]
        assert len(seeded_backend.inserted[ORDER_ITEMS]) == 2
        assert len(app.orders_reader.items) == 1
        assert "Saved order" in app.system_status


@pytest.mark.anyio
async def test_remove_from_cart_pane(seeded_backend):
    app = PosApp(seeded_backend)
    async with app.run_test() as pilot:
        await pilot.pause()
        await pilot.press("enter", "down", "enter", "tab", "minus")

        assert [line.item.name for line in app.till.cart] == ["Coffee"]


@pytest.mark.anyio
async def test_confirm_with_empty_cart_does_nothing(seeded_backend):
    app = PosApp(seeded_backend)
    async with app.run_test() as pilot:
        await pilot.pause()
        await pilot.press("ctrl+s")
        await _settle(app, pilot)

        assert ("insert", ORDERS) not in seeded_backend.calls
        assert app.system_status == "Nothing to submit"


@pytest.mark.anyio
async def test_failed_submission_keeps_cart(seeded_backend):
    seeded_backend.fail_insert[ORDER_ITEMS] = "insert failed"
    app = PosApp(seeded_backend)
    async with app.run_test() as pilot:
        await pilot.pause()
        await pilot.press("enter")
        await pilot.press("ctrl+s")
        await _settle(app, pilot)

        assert [line.item.name for line in app.till.cart] == ["Coffee"]
        assert len(seeded_backend.tables[ORDERS]) == 1
        assert "not saved" in app.system_status


@pytest.mark.anyio
async def test_menu_error_blocks_until_retry_succeeds(seeded_backend):
    seeded_backend.fail_select[MENU_ITEMS] = "could not connect"
    app = PosApp(seeded_backend)
    async with app.run_test() as pilot:
        await pilot.pause()
        assert isinstance(app.screen, ConnectionErrorScreen)
        assert app.screen.error_text == "could not connect"

        del seeded_backend.fail_select[MENU_ITEMS]
        await pilot.press("r")
        await pilot.pause()

        assert not isinstance(app.screen, ConnectionErrorScreen)
        assert len(app.menu_reader.items) == 4


@pytest.mark.anyio
async def test_unmount_releases_subscriptions(seeded_backend):
    app = PosApp(seeded_backend, owns_backend=True)
    async with app.run_test() as pilot:
        await pilot.pause()
        assert seeded_backend.hub.handler_count(MENU_ITEMS) == 1
        assert seeded_backend.hub.handler_count(ORDERS) == 1

    assert seeded_backend.hub.handler_count(MENU_ITEMS) == 0
    assert seeded_backend.hub.handler_count(ORDERS) == 0
    assert seeded_backend.closed


@pytest.mark.anyio
async def test_stats_toggle(seeded_backend):
    app = PosApp(seeded_backend)
    async with app.run_test() as pilot:
        await pilot.pause()
        panel = app.query_one("#stats-panel")
        assert not panel.display

        await pilot.press("s")

        assert panel.display


@pytest.mark.anyio
async def test_unexpected_submission_error_is_reported(seeded_backend, monkeypatch):
    app = PosApp(seeded_backend)

    async def broken_confirm():
        raise RuntimeError("driver crashed")

    async with app.run_test() as pilot:
        await pilot.pause()
        await pilot.press("enter")
        monkeypatch.setattr(app.till, "confirm", broken_confirm)
        await pilot.press("ctrl+s")
        await _settle(app, pilot)

        assert "failed unexpectedly" in app.system_status
        assert [line.item.name for line in app.till.cart] == ["Coffee"]
