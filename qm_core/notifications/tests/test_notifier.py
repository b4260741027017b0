import pytest

from qm_core.notifications import Audience, get_notifier, publish_safely
from qm_core.notifications.base import AudienceKind
from qm_core.notifications.hub import InProcessNotifier, RecordingNotifier


@pytest.mark.parametrize(
    "audience,room",
    [
        (Audience.organization("abc"), "org:abc"),
        (Audience.role("admin"), "role:admin"),
        (Audience.counter("c1"), "counter:c1"),
        (Audience.user(7), "user:7"),
        (Audience.everyone(), "all"),
    ],
)
def test_audience_rooms(audience, room):
    assert audience.room == room


def test_everyone_audience_kind():
    assert Audience.everyone().kind == AudienceKind.ALL


def test_in_process_fan_out():
    hub = InProcessNotifier()
    room_events, all_events = [], []

    @hub.subscribe("org:abc")
    def on_room(broadcast):
        room_events.append(broadcast.event)

    hub.add_listener("all", lambda b: all_events.append(b.room))

    hub.publish(Audience.organization("abc"), "token:created", {"number": "I001"})
    hub.publish(Audience.organization("xyz"), "token:created", {"number": "I001"})

    assert room_events == ["token:created"]
    assert all_events == ["org:abc", "org:xyz"]


def test_broken_listener_does_not_starve_others():
    hub = InProcessNotifier()
    received = []

    def broken(broadcast):
        raise ValueError("boom")

    hub.add_listener("org:abc", broken)
    hub.add_listener("org:abc", lambda b: received.append(b.payload))

    hub.publish(Audience.organization("abc"), "queue:reset", {"customer_type": None})

    assert received == [{"customer_type": None}]


def test_remove_listener():
    hub = InProcessNotifier()
    received = []
    listener = received.append

    hub.add_listener("org:abc", listener)
    hub.remove_listener("org:abc", listener)
    hub.publish(Audience.organization("abc"), "token:called", {})

    assert received == []


def test_publish_safely_swallows_notifier_errors(caplog):
    class Broken:
        def publish(self, audience, event, payload):
            raise ConnectionError("gateway down")

    publish_safely(Broken(), Audience.organization("abc"), "token:called", {})

    assert "failed to publish token:called" in caplog.text


def test_broadcast_message_shape():
    notifier = RecordingNotifier()
    notifier.publish(Audience.counter("c1"), "token:called", {"number": "R004"})

    message = notifier.broadcasts[0].as_message()
    assert message["room"] == "counter:c1"
    assert message["event"] == "token:called"
    assert message["payload"] == {"number": "R004"}
    assert "sent_at" in message


def test_default_notifier_comes_from_settings():
    get_notifier.cache_clear()
    try:
        assert isinstance(get_notifier(), RecordingNotifier)
    finally:
        get_notifier.cache_clear()
