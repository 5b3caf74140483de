from rollcall.checkin import ERROR, NOT_FOUND, SUCCESS, Signal, SignalBus
from rollcall.feedback import OscFeedbackOut


class FakeClient:
    def __init__(self):
        self.sent = []

    def send_message(self, path, value):
        self.sent.append((path, value))


def test_signals_map_to_osc_addresses():
    bus = SignalBus()
    out = OscFeedbackOut({"enabled": True, "port": 9999, "addresses": {"success": "/desk/ok"}})
    out.start(bus)
    fake = out._client = FakeClient()

    bus.publish(Signal(SUCCESS, "Checked in"))
    bus.publish(Signal(NOT_FOUND, "No member"))
    bus.publish(Signal(ERROR, "write failed"))
    assert fake.sent == [("/desk/ok", 1.0), ("/rollcall/not_found", 1.0)]

    out.stop()
    bus.publish(Signal(SUCCESS, "Checked in"))
    assert len(fake.sent) == 2


def test_disabled_feedback_does_not_subscribe():
    bus = SignalBus()
    out = OscFeedbackOut({"enabled": False})
    out.start(bus)
    bus.publish(Signal(SUCCESS, "Checked in"))
    assert out.sent == 0
