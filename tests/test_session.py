import pytest

from admin_notifications.messages import MessageCatalog
from admin_notifications.schemas import AdminView, NotificationKind
from admin_notifications.session import AdminNotificationSession
from tests.fakes import WATERMARK, FakeFeed, FakeStore, Recorder, make_settings, settle


@pytest.fixture
def store():
    return FakeStore(locations={"loc1": "Table 2", "loc7": "Garden"})


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def sent():
    return Recorder()


@pytest.fixture
def session(store, feed, sent):
    return AdminNotificationSession(
        store=store, feed=feed, send=sent, settings=make_settings(), clock=lambda: WATERMARK
    )


@pytest.mark.asyncio
async def test_new_order_scenario_announced_once(session, feed, store, sent):
    async with session:
        feed.push("orders", {"id": "o1", "location_id": "loc1"})
        await settle()
        # the 5 second poll sees the same row in its window
        store.orders.append({"id": "o1", "location_id": "loc1"})
        await session.adapter.poll_once()
        await settle()

        active = session.queue.active
        assert active.kind is NotificationKind.ORDER
        assert active.location_label == "Table 2"
        assert len(session.queue) == 0

    shows = sent.of_type("notification.show")
    assert len(shows) == 1
    assert shows[0]["title"] == "New order from Table 2"
    assert shows[0]["body"] == "A new order has been placed."
    assert sent.of_type("sound.play")[0]["src"] == "/sounds/order-notification.mp3"


@pytest.mark.asyncio
async def test_active_notification_is_not_replaced_by_later_events(session, feed, sent):
    async with session:
        feed.push("orders", {"id": "o1", "location_id": "loc1"})
        await settle()
        first = session.queue.active
        feed.push("waiter_calls", {"id": "w1", "location_id": "loc7", "is_resolved": False})
        await settle()

        assert session.queue.active is first
        assert len(session.queue) == 1
        assert len(sent.of_type("notification.show")) == 1


@pytest.mark.asyncio
async def test_view_details_routes_then_advances(session, feed, sent):
    async with session:
        feed.push("orders", {"id": "o1", "location_id": "loc1"})
        feed.push("waiter_calls", {"id": "w1", "location_id": "loc7", "is_resolved": False})
        await settle()

        await session.handle_action({"action": "view_details", "queue_id": session.queue.active.queue_id})
        assert session.view is AdminView.ORDERS
        assert session.queue.active.kind is NotificationKind.WAITER

        await session.handle_action({"action": "view_details"})
        assert session.view is AdminView.WAITER_CALLS
        assert session.queue.active is None

    assert [m["view"] for m in sent.of_type("view.changed")] == ["orders", "waiter-calls"]
    titles = [m["title"] for m in sent.of_type("notification.show")]
    assert titles == ["New order from Table 2", "Waiter called at Garden"]
    assert sent.messages[-1] == {"type": "notification.clear"}
    assert sent.of_type("sound.play")[1]["src"] == "/sounds/notification.mp3"


@pytest.mark.asyncio
async def test_dismiss_advances_without_routing(session, feed, sent):
    async with session:
        await session.handle_action({"action": "set_view", "view": "menu-items"})
        feed.push("orders", {"id": "o1", "location_id": "loc1"})
        await settle()
        await session.handle_action({"action": "dismiss"})

        assert session.view is AdminView.MENU_ITEMS
        assert session.queue.active is None


@pytest.mark.asyncio
async def test_stale_acknowledgement_is_ignored(session, feed):
    async with session:
        feed.push("orders", {"id": "o1", "location_id": "loc1"})
        await settle()
        await session.handle_action({"action": "view_details", "queue_id": "not-the-active-one"})
        assert session.queue.active is not None


@pytest.mark.asyncio
async def test_native_notification_only_after_permission(session, feed, sent):
    async with session:
        feed.push("orders", {"id": "o1", "location_id": "loc1"})
        await settle()
        assert sent.of_type("native.show") == []

        await session.handle_action({"action": "permission", "granted": True})
        await session.handle_action({"action": "dismiss"})
        feed.push("orders", {"id": "o2", "location_id": "loc1"})
        await settle()

    native = sent.of_type("native.show")
    assert len(native) == 1
    assert native[0]["require_interaction"] is True
    assert native[0]["title"] == "New order from Table 2"


@pytest.mark.asyncio
async def test_sound_failure_still_shows_notification(store, feed):
    sent = Recorder(fail_types={"sound.play"})
    session = AdminNotificationSession(store=store, feed=feed, send=sent, settings=make_settings())
    async with session:
        feed.push("orders", {"id": "o1", "location_id": "loc1"})
        await settle()
        await session.handle_action({"action": "audio_failed", "queue_id": "x", "error": "NotAllowedError"})

    assert len(sent.of_type("notification.show")) == 1


@pytest.mark.asyncio
async def test_lookup_failure_shows_fallback_label(session, feed, store, sent):
    store.lookup_error = RuntimeError("timeout")
    async with session:
        feed.push("waiter_calls", {"id": "w1", "location_id": "loc1", "is_resolved": False})
        await settle()

    assert sent.of_type("notification.show")[0]["location_label"] == "Unknown location"


@pytest.mark.asyncio
async def test_host_can_raise_notification_with_custom_message(session, sent):
    async with session:
        event = await session.on_show_notification("waiter", "Bar", message="Bill requested")

    assert event.source_record_id is None
    show = sent.of_type("notification.show")[0]
    assert show["body"] == "Bill requested"
    assert show["title"] == "Waiter called at Bar"


@pytest.mark.asyncio
async def test_teardown_closes_feed_and_blocks_further_notifications(session, feed, sent):
    await session.start()
    callback = feed.callbacks["orders"]
    await session.stop()

    callback({"id": "late", "location_id": "loc1"})
    await session.on_show_notification("order", "Table 2")
    await settle()

    assert feed.closed
    assert session.queue.active is None
    assert sent.of_type("notification.show") == []


@pytest.mark.asyncio
async def test_unknown_actions_are_ignored(session):
    async with session:
        await session.handle_action({"action": "explode"})
        await session.handle_action({"action": "set_view", "view": "kitchen"})
        await session.handle_action(["not", "a", "dict"])
        assert session.view is AdminView.ORDERS


def test_persian_is_the_default_language():
    catalog = MessageCatalog("de")
    assert catalog.language == "fa"
    assert catalog.title(NotificationKind.ORDER, "میز ۲").endswith("میز ۲")
    assert catalog.body(NotificationKind.WAITER) == "یک مشتری گارسون را صدا زده است."
