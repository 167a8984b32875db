# tests/conftest.py

from typing import List, Optional

import pytest

from led_server.gpio_line import OutputLine


class FakeLine:
    def __init__(self, calls: List[tuple]):
        self.calls = calls
        self.fail_request: Optional[Exception] = None
        self.fail_set: Optional[Exception] = None
        self.fail_release: Optional[Exception] = None
        self.on_set = None

    def request_output(self, consumer, default):
        self.calls.append(("request_output", consumer, default))
        if self.fail_request is not None:
            raise self.fail_request

    def set_value(self, value):
        self.calls.append(("set_value", value))
        if self.on_set is not None:
            self.on_set()
        if self.fail_set is not None:
            raise self.fail_set

    def release(self):
        self.calls.append(("release",))
        if self.fail_release is not None:
            raise self.fail_release


class FakeChip:
    """In-memory chip backend recording every hardware call in order."""

    def __init__(self, name: str = "gpiochip0", num_lines: int = 54):
        self.name = name
        self.num_lines = num_lines
        self.calls: List[tuple] = []
        self.line = FakeLine(self.calls)

    def get_line(self, offset):
        self.calls.append(("get_line", offset))
        if not 0 <= offset < self.num_lines:
            raise ValueError(f"offset {offset} out of range")
        return self.line

    def close(self):
        self.calls.append(("close",))

    def count(self, name: str, *args) -> int:
        return sum(1 for c in self.calls if c[0] == name and c[1:] == args)

    @property
    def driven(self) -> List[int]:
        return [c[1] for c in self.calls if c[0] == "set_value"]


@pytest.fixture
def log():
    return []


@pytest.fixture
def chip():
    return FakeChip()


@pytest.fixture
def line(chip, log):
    return OutputLine(chip, 22, "WebServeLedPin", logger=log.append)
