# led_server/config.py

import os

# GPIO
# gpiod: character-device chip + line offset. rpi: RPi.GPIO, BCM numbering.
GPIO_BACKEND = os.getenv("LEDSERVER_BACKEND", "gpiod")
CHIP_NAME = os.getenv("LEDSERVER_CHIP", "gpiochip0")
LED_PIN = int(os.getenv("LEDSERVER_PIN", "22"))
CONSUMER_NAME = os.getenv("LEDSERVER_CONSUMER", "WebServeLedPin")

# Web server
HOST = os.getenv("LEDSERVER_HOST", "0.0.0.0")
PORT = int(os.getenv("LEDSERVER_PORT", "5555"))
LISTEN_BACKLOG = 5
RECV_CHUNK = 1024
MAX_REQUEST_LINE = 8192
