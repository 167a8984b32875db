# led_server/__init__.py

from .gpio_line import DriveError, OutputLine, ResourceUnavailable
from .server import ControlLoop, TransportError
from .state import ControlState

__all__ = [
    "ControlLoop",
    "ControlState",
    "DriveError",
    "OutputLine",
    "ResourceUnavailable",
    "TransportError",
]
