from timeviz.services.events import ChartEvent, EventBus


def test_publish_reaches_subscribers_in_order():
    bus = EventBus()
    seen = []
    bus.subscribe(ChartEvent.FRAME_RENDERED, lambda e: seen.append(("a", e.payload)))
    bus.subscribe("frame_rendered", lambda e: seen.append(("b", e.payload)))
    evt = bus.publish(ChartEvent.FRAME_RENDERED, 3)
    assert evt.name == "frame_rendered"
    assert seen == [("a", 3), ("b", 3)]


def test_failing_handler_is_isolated(caplog):
    bus = EventBus()
    seen = []

    def boom(_event):
        raise ValueError("handler")

    bus.subscribe(ChartEvent.STATUS_CHANGED, boom)
    bus.subscribe(ChartEvent.STATUS_CHANGED, lambda e: seen.append(e.payload))
    bus.publish(ChartEvent.STATUS_CHANGED, "ok")
    assert seen == ["ok"]
    ((event, exc),) = bus.errors
    assert event.payload == "ok"
    assert isinstance(exc, ValueError)
    assert "handler for status_changed failed" in caplog.text


def test_once_and_unsubscribe():
    bus = EventBus()
    seen = []
    bus.subscribe("x", seen.append, once=True)
    sub = bus.subscribe("x", seen.append)
    bus.publish("x")
    assert len(seen) == 2
    assert bus.subscriber_count("x") == 1
    bus.unsubscribe(sub)
    bus.publish("x")
    assert len(seen) == 2
    assert bus.subscriber_count("x") == 0


def test_cancelled_subscription_is_skipped():
    bus = EventBus()
    seen = []
    sub = bus.subscribe("x", seen.append)
    sub.cancel()
    bus.publish("x")
    assert seen == []
    bus.subscribe("x", seen.append)
    bus.clear()
    bus.publish("x")
    assert seen == []


def test_error_log_keeps_only_latest_failures():
    bus = EventBus(error_capacity=3)

    def boom(event):
        raise RuntimeError(event.payload)

    bus.subscribe("tick", boom)
    for i in range(10):
        bus.publish("tick", i)
    assert [evt.payload for evt, _exc in bus.errors] == [7, 8, 9]
