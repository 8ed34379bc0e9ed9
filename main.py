"""
Raptor Core Entry Point
==========================
Run the Modbus-to-MQTT bridge for the chain + wheel drive set.

Usage:
  python main.py                      # Real drives, settings from env
  python main.py --simulate           # Simulated drives, no MQTT
  python main.py --config tune.json   # Override tunables from JSON
  python main.py --direction-control  # Allow P0227 direction writes
"""

import argparse
import logging
import signal
import sys

from raptor.config.settings import Settings
from raptor.core.bridge import RaptorBridge
from raptor.drivers.modbus_driver import tcp_client_factory

logger = logging.getLogger("raptor")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Raptor chain/wheel VFD bridge (Modbus TCP <-> MQTT)"
    )
    parser.add_argument(
        "--simulate", action="store_true",
        help="Run against simulated drives without an MQTT broker"
    )
    parser.add_argument(
        "--config",
        help="Path to a JSON file of tunable overrides"
    )
    parser.add_argument(
        "--direction-control", action="store_true",
        help="Enable wheel direction writes (P0227); may switch the "
             "drive command source away from the physical switches"
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--log-file",
        help="Log to file instead of stderr"
    )
    return parser.parse_args(argv)


def load_settings(args) -> Settings:
    settings = Settings.from_env()
    if args.config:
        settings.apply_overrides(args.config)
    if args.direction_control:
        settings.direction_control = True
    return settings


def create_transport(settings: Settings):
    """Connect to the MQTT broker; failure is fatal at startup."""
    from raptor.transport.mqtt import MqttTransport, TransportError

    transport = MqttTransport(
        settings.mqtt_url,
        client_id=settings.client_id,
        username=settings.mqtt_user,
        password=settings.mqtt_pass,
    )
    try:
        transport.connect(timeout=10.0)
    except TransportError as exc:
        logger.error("mqtt connect: %s", exc)
        sys.exit(1)
    return transport


def main(argv=None):
    args = parse_args(argv)

    log_kwargs = {
        "level": getattr(logging, args.log_level),
        "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    }
    if args.log_file:
        log_kwargs["filename"] = args.log_file
    logging.basicConfig(**log_kwargs)

    settings = load_settings(args)
    logger.info("Settings: %s", settings.as_dict())

    if args.simulate:
        from raptor.drivers.simulator import DriveSimulator
        simulator = DriveSimulator()
        transport = None
        client_factory = simulator.client_factory
    else:
        transport = create_transport(settings)
        client_factory = tcp_client_factory

    bridge = RaptorBridge(settings, transport=transport, client_factory=client_factory)
    if not bridge.connect_drives():
        logger.error("Failed to connect to main VFD at %s", settings.main_addr)
        if transport is not None:
            transport.disconnect()
        sys.exit(1)

    def signal_handler(sig, frame):
        bridge.stop()
        if transport is not None:
            transport.disconnect()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    bridge.start()
    print("Raptor bridge running. Press Ctrl+C to stop.")
    signal.pause()


if __name__ == "__main__":
    main()
