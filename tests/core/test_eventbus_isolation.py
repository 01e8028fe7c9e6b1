from modflow.eventbus import EventBus


def test_eventbus_handler_isolation():
    bus = EventBus()
    calls = []

    def bad(_):
        calls.append("bad")
        raise RuntimeError("boom")

    def good(_):
        calls.append("good")

    bus.subscribe("IsoEvent", bad)
    bus.subscribe("IsoEvent", good)
    bus.emit("IsoEvent", {})
    assert calls == ["bad", "good"]
    counters = bus.metrics.snapshot()["counters"]
    assert counters["handler_exceptions_total{event=IsoEvent}"] == 1


def test_buses_do_not_share_subscribers_or_metrics():
    a, b = EventBus(), EventBus()
    got = []
    a.subscribe("e", got.append)
    b.emit("e", {})
    assert got == []
    assert a.metrics.counter("events_emitted_total", {"event": "e"}) == 0
    assert b.metrics.counter("events_emitted_total", {"event": "e"}) == 1
