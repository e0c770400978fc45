#!/usr/bin/env python3
"""
main.py – wire the radio together and run it.

    rradio [-c CONFIG] [-v]
"""
from __future__ import annotations

import argparse
import logging
import sys

import config
import keyboard
import telemetry
import web_remote
from app import RadioApp
from audio_player import AudioPlayer
from channel_manager import ChannelManager
from channel_resolver import ChannelResolver
from errors import ConfigError, LcdError
from events import EventManager
from lcd import LcdDevice
from log_setup import setup_logging
from mount_manager import MountManager

log = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=config.APP_NAME,
                                     description="Keypad internet radio with an LCD")
    parser.add_argument("-c", "-C", "--config", dest="config",
                        help="TOML config file (default: %s beside the program)"
                        % config.DEFAULT_CONFIG_FILE)
    parser.add_argument("-v", "-V", "--version", action="store_true",
                        help="print the version and carry on")
    args, extra = parser.parse_known_args(argv)
    if extra:
        parser.error(f"unexpected arguments {' '.join(extra)}")
    return args


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.version:
        print(f"{config.APP_NAME} {config.VERSION} built {config.BUILD_TIME:%d %b %y %H:%M:%S}")

    try:
        cfg = config.load_config(args.config)
    except ConfigError as e:
        print(e, file=sys.stderr)
        try:
            lcd = LcdDevice.open()
            lcd.show_message(str(e))
            lcd.close()
        except LcdError:
            pass                               # no screen either; stderr has it
        return 1

    setup_logging(cfg.log_level, cfg.log_file)
    log.info("%s %s starting with %s", config.APP_NAME, config.VERSION, args.config or "default config")

    try:
        lcd = LcdDevice.open(cfg.lcd_device)
    except LcdError as e:
        log.error("%s", e)
        print(e, file=sys.stderr)
        return 1

    mounts = MountManager(cfg.usb, cfg.samba)
    telemetry.bring_up_wifi(mounts)
    network = telemetry.discover_network()
    log.info("network %s", network)

    events = EventManager()
    notifier = web_remote.Broadcaster()
    resolver = ChannelResolver(cfg, ChannelManager(cfg.stations_directory), mounts)
    with AudioPlayer(events, cfg.buffering_duration) as player:
        radio = RadioApp(cfg, player, events, mounts, resolver, lcd=lcd, notifier=notifier)
        radio.start(network)
        web_remote.start(web_remote.WebRemote(events, notifier, cfg.log_file), cfg.web_port)
        keyboard.start(events, cfg.input_timeout)
        try:
            radio.run()
        finally:
            lcd.close()
    log.info("%s stopped", config.APP_NAME)
    return 0


if __name__ == "__main__":
    sys.exit(main())
