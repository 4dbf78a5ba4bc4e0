import pytest

serial = pytest.importorskip("serial")

from dualfield_rdk.response import EventKind, KeyMapping  # noqa: E402
from dualfield_rdk.serial_keypad import SerialKeypad  # noqa: E402


@pytest.fixture
def keypad(monkeypatch):
    def loopback(port, baudrate, timeout):
        return serial.serial_for_url("loop://", baudrate=baudrate, timeout=timeout)

    monkeypatch.setattr(serial, "Serial", loopback)
    pad = SerialKeypad(port="COM9")
    yield pad
    pad.close()


def test_poll_returns_nothing_when_idle(keypad):
    assert keypad.poll_keys() == []


def test_characters_become_key_names(keypad):
    keypad._device.write(b"8 6\r\x08")
    assert keypad.poll_keys() == ["8", "6", "return", "backspace"]
    assert keypad.poll_keys() == []


def test_keypad_keys_map_to_response_events(keypad):
    keypad._device.write(b"3\n")
    mapping = KeyMapping()
    events = [mapping.event_for_key(key, keypad.device_label) for key in keypad.poll_keys()]
    assert [event.kind for event in events] == [EventKind.DIRECTION, EventKind.CONFIRM]
    assert events[0].direction == 3
    assert {event.device_label for event in events} == {"SerialKeypad"}
