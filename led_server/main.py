# led_server/main.py

import argparse
import signal
import sys
from typing import Callable, Iterable, List, Optional

from . import config
from .gpio_line import BACKENDS, TERMINATION_SIGNALS, OutputLine, ResourceUnavailable
from .server import ControlLoop


def install_signal_handlers(
    line: OutputLine,
    logger: Callable[[str], None] = print,
    signals: Iterable[signal.Signals] = TERMINATION_SIGNALS,
):
    def handler(signum, _frame) -> None:
        name = signal.Signals(signum).name
        line.release()
        if line.released:
            logger(f"[MAIN] {name}: GPIO cleanup done. Exiting safely.")
        else:
            # Interrupted an in-progress release(); it finishes while SystemExit unwinds.
            logger(f"[MAIN] {name}: GPIO cleanup in progress. Exiting.")
        sys.exit(0)

    for sig in signals:
        signal.signal(sig, handler)
    return handler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Control one GPIO LED over HTTP")
    parser.add_argument("--host", default=config.HOST)
    parser.add_argument("--port", type=int, default=config.PORT)
    parser.add_argument("--chip", default=config.CHIP_NAME)
    parser.add_argument("--pin", type=int, default=config.LED_PIN, help="line offset (BCM number for rpi)")
    parser.add_argument("--consumer", default=config.CONSUMER_NAME)
    parser.add_argument("--backend", choices=sorted(BACKENDS), default=config.GPIO_BACKEND)
    return parser


def main(argv: Optional[List[str]] = None, logger: Callable[[str], None] = print) -> int:
    args = build_parser().parse_args(argv)

    # Hardware first: no listener is opened without the LED line.
    try:
        line = OutputLine.acquire(args.chip, args.pin, args.consumer, backend=args.backend, logger=logger)
    except (ResourceUnavailable, ValueError) as e:
        logger(f"[GPIO] {e}")
        return 1

    install_signal_handlers(line, logger)
    loop = ControlLoop(line, host=args.host, port=args.port, logger=logger)

    try:
        loop.serve_forever()
    except OSError as e:
        logger(f"[MAIN] Server error: {e}")
        return 1
    finally:
        loop.close()
        line.release()
        logger("[MAIN] Stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
