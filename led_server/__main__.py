# led_server/__main__.py

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
