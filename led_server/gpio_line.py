# led_server/gpio_line.py

import signal
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Optional


class ResourceUnavailable(Exception):
    """The chip could not be opened or the line could not be claimed."""


class DriveError(Exception):
    """The backend rejected a write to an acquired line."""


# ---------------- Backends ----------------
# A backend opens a chip by name and hands out lines by offset. Driver
# libraries are imported on open so the package loads on machines without GPIO.


class GpiodChip:
    """libgpiod v2 character-device chip ("gpiochip0" or "/dev/gpiochip0")."""

    def __init__(self, name: str):
        import gpiod

        self.name = name
        self._gpiod = gpiod
        path = name if name.startswith("/") else f"/dev/{name}"
        self._chip = gpiod.Chip(path)

    def get_line(self, offset: int) -> "GpiodLine":
        # Fails for offsets the chip does not expose.
        self._chip.get_line_info(offset)
        return GpiodLine(self._gpiod, self._chip, offset)

    def close(self) -> None:
        self._chip.close()


class GpiodLine:
    def __init__(self, gpiod, chip, offset: int):
        self._gpiod = gpiod
        self._chip = chip
        self._offset = offset
        self._request = None

    def _value(self, value: int):
        from gpiod.line import Value

        return Value.ACTIVE if value else Value.INACTIVE

    def request_output(self, consumer: str, default: int) -> None:
        from gpiod.line import Direction

        settings = self._gpiod.LineSettings(direction=Direction.OUTPUT, output_value=self._value(default))
        self._request = self._chip.request_lines(config={self._offset: settings}, consumer=consumer)

    def set_value(self, value: int) -> None:
        self._request.set_value(self._offset, self._value(value))

    def release(self) -> None:
        if self._request is not None:
            self._request.release()
            self._request = None


class RpiGpioChip:
    """RPi.GPIO with BCM numbering; the chip name is informational only."""

    def __init__(self, name: str):
        import RPi.GPIO as GPIO

        self.name = name
        self._gpio = GPIO
        GPIO.setwarnings(False)
        GPIO.setmode(GPIO.BCM)

    def get_line(self, offset: int) -> "RpiGpioLine":
        # Raises ValueError for channels that are not valid BCM pins.
        self._gpio.gpio_function(offset)
        return RpiGpioLine(self._gpio, offset)

    def close(self) -> None:
        # RPi.GPIO has no chip handle; cleanup is per pin in RpiGpioLine.release().
        pass


class RpiGpioLine:
    def __init__(self, gpio, pin: int):
        self._gpio = gpio
        self._pin = pin

    def request_output(self, consumer: str, default: int) -> None:
        GPIO = self._gpio
        GPIO.setup(self._pin, GPIO.OUT, initial=GPIO.HIGH if default else GPIO.LOW)

    def set_value(self, value: int) -> None:
        GPIO = self._gpio
        GPIO.output(self._pin, GPIO.HIGH if value else GPIO.LOW)

    def release(self) -> None:
        self._gpio.cleanup(self._pin)


BACKENDS: Dict[str, Callable[[str], object]] = {
    "gpiod": GpiodChip,
    "rpi": RpiGpioChip,
}


# ---------------- Line owner ----------------

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def _termination_signals_blocked():
    # Deferred signals are delivered when the previous mask is restored.
    if not hasattr(signal, "pthread_sigmask"):
        yield
        return
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, TERMINATION_SIGNALS)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


class OutputLine:
    """Exclusive owner of one output line.

    The line is requested as an output driven low. `release()` drives it low
    again, releases it and closes the chip exactly once, no matter how many
    times or from where it is called (normal teardown or a signal handler).
    """

    def __init__(
        self,
        chip,
        offset: int,
        consumer: str,
        logger: Callable[[str], None] = print,
    ):
        self.chip_name = getattr(chip, "name", str(chip))
        self.offset = offset
        self.consumer = consumer
        self.value = 0
        self._log = logger

        self._chip = chip
        self._line = None
        # Non-blocking one-shot: safe to hit again from a signal handler mid-teardown.
        self._release_once = threading.Lock()
        self._released = False
        self._torn_down = False

        try:
            self._line = chip.get_line(offset)
        except Exception as e:
            self._close_chip()
            raise ResourceUnavailable(f"Failed to get GPIO line {offset} on {self.chip_name}: {e}") from e

        try:
            self._line.request_output(consumer, 0)
        except Exception as e:
            self._close_chip()
            raise ResourceUnavailable(f"Failed to request GPIO line {offset} as output: {e}") from e

        self._log(f"[GPIO] Acquired {self.chip_name} line {offset} as '{consumer}'")

    @classmethod
    def acquire(
        cls,
        chip_name: str,
        offset: int,
        consumer: str,
        backend: str = "gpiod",
        logger: Callable[[str], None] = print,
    ) -> "OutputLine":
        opener = BACKENDS.get(backend)
        if opener is None:
            raise ValueError(f"Unknown GPIO backend: {backend!r}")

        try:
            chip = opener(chip_name)
        except Exception as e:
            raise ResourceUnavailable(f"Failed to open {chip_name}: {e}") from e

        return cls(chip, offset, consumer, logger=logger)

    @property
    def acquired(self) -> bool:
        return not self._released

    @property
    def released(self) -> bool:
        """True once teardown has run to the end."""
        return self._torn_down

    def set_value(self, value: int) -> None:
        if value not in (0, 1):
            raise ValueError(f"GPIO value must be 0 or 1, got {value!r}")
        if self._released:
            raise RuntimeError(f"GPIO line {self.offset} on {self.chip_name} was already released")

        try:
            self._line.set_value(value)
        except Exception as e:
            raise DriveError(f"Failed to set GPIO line {self.offset} to {value}: {e}") from e
        self.value = int(value)

    def release(self) -> None:
        with _termination_signals_blocked():
            if not self._release_once.acquire(blocking=False):
                return
            self._released = True

            # Each step still runs if an earlier one is cut short (SystemExit from a handler).
            try:
                self._drive_low()
            finally:
                try:
                    self._release_line()
                finally:
                    self._close_chip()
                    self._torn_down = True
                    self._log(f"[GPIO] Released {self.chip_name} line {self.offset}")

    def _drive_low(self) -> None:
        try:
            self._line.set_value(0)
            self.value = 0
        except Exception as e:
            self._log(f"[GPIO] Drive low on release failed: {e}")

    def _release_line(self) -> None:
        try:
            self._line.release()
        except Exception as e:
            self._log(f"[GPIO] Line release failed: {e}")

    def _close_chip(self) -> None:
        try:
            self._chip.close()
        except Exception as e:
            self._log(f"[GPIO] Chip close failed: {e}")

    def __enter__(self) -> "OutputLine":
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> Optional[bool]:
        self.release()
        return None
