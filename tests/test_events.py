from obsidian_pomodoro.events import EventBus, SessionEvent


def test_delivery_in_registration_order() -> None:
    bus = EventBus()
    seen = []
    bus.subscribe(SessionEvent.TICK, lambda v: seen.append(("a", v)))
    bus.subscribe(SessionEvent.TICK, lambda v: seen.append(("b", v)))

    bus.emit(SessionEvent.TICK, 42)

    assert seen == [("a", 42), ("b", 42)]


def test_unsubscribe() -> None:
    bus = EventBus()
    seen = []

    def callback():
        seen.append("started")

    bus.subscribe(SessionEvent.STARTED, callback)
    assert bus.unsubscribe(SessionEvent.STARTED, callback) is True
    assert bus.unsubscribe(SessionEvent.STARTED, callback) is False

    bus.emit(SessionEvent.STARTED)
    assert seen == []


def test_failing_subscriber_does_not_block_others() -> None:
    bus = EventBus()
    seen = []

    def broken():
        raise RuntimeError("boom")

    bus.subscribe(SessionEvent.STOPPED, broken)
    bus.subscribe(SessionEvent.STOPPED, lambda: seen.append("stopped"))

    bus.emit(SessionEvent.STOPPED)

    assert seen == ["stopped"]


def test_unsubscribe_during_delivery() -> None:
    bus = EventBus()
    seen = []

    def once():
        seen.append("once")
        bus.unsubscribe(SessionEvent.RESET, once)

    bus.subscribe(SessionEvent.RESET, once)
    bus.subscribe(SessionEvent.RESET, lambda: seen.append("always"))

    bus.emit(SessionEvent.RESET)
    bus.emit(SessionEvent.RESET)

    assert seen == ["once", "always", "always"]
