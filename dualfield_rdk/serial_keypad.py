"""Serial keypad helper for Mopii-style response boxes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

# control characters some keypads send for their enter/back keys
CONTROL_KEYS: Dict[str, str] = {
    "\r": "return",
    "\n": "return",
    "\x08": "backspace",
    "\x7f": "delete",
}


@dataclass
class SerialKeypad:
    """Non-blocking reader for a keypad that sends ASCII characters over serial."""

    port: str
    baudrate: int = 9600
    timeout_s: float = 0.0
    encoding: str = "ascii"
    device_label: str = "SerialKeypad"

    def __post_init__(self) -> None:
        try:
            import serial
        except ImportError as exc:  # pragma: no cover - runtime environment specific
            raise RuntimeError(
                "pyserial is required for SerialKeypad support. Install it via 'pip install pyserial'."
            ) from exc

        self._device = serial.Serial(
            port=self.port,
            baudrate=self.baudrate,
            timeout=self.timeout_s,
        )

    def close(self) -> None:
        """Close the underlying serial port."""

        self._device.close()

    def poll_keys(self) -> List[str]:
        """Return the key names received since the last poll, in order."""

        keys = []
        for char in self._read_all():
            if char in CONTROL_KEYS:
                keys.append(CONTROL_KEYS[char])
            elif char.strip():
                keys.append(char)
        return keys

    def _read_all(self) -> str:
        """Read and decode any bytes currently waiting on the serial buffer."""

        waiting = self._device.in_waiting
        if not waiting:
            return ""
        data = self._device.read(waiting)
        if not data:
            return ""
        return data.decode(self.encoding, errors="ignore")


__all__ = ["SerialKeypad", "CONTROL_KEYS"]
