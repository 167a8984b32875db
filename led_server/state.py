# led_server/state.py

from dataclasses import dataclass


@dataclass
class ControlState:
    # Last commanded LED state; every process starts with it off.
    led_on: bool = False

    @property
    def value(self) -> int:
        return 1 if self.led_on else 0
