"""
Main entry point for the power box ASCOM Alpaca driver.

Usage:
    python -m powerbox_alpaca [--config CONFIG_PATH] [--simulator]
"""

import argparse
import sys
import logging
import signal
from typing import Optional

import uvicorn

from powerbox_alpaca import __version__
from powerbox_alpaca.config.loader import load_config, save_config, ConfigurationError
from powerbox_alpaca.config.models import AppConfig
from powerbox_alpaca.utils.exceptions import PowerBoxException
from powerbox_alpaca.utils.logging_setup import setup_logging
from powerbox_alpaca.api.app import create_app
from powerbox_alpaca.api.discovery import DiscoveryServer
from powerbox_alpaca.device.powerbox import PowerBox
from powerbox_alpaca.device.poller import StatusPoller
from powerbox_alpaca.protocol.connection import ConnectionManager
from powerbox_alpaca.protocol.port_scanner import find_first_powerbox, list_available_ports
from powerbox_alpaca.protocol.transport import LinkTransport, SerialTransport
from powerbox_alpaca.simulator.mock_powerbox import MockPowerBox
from powerbox_alpaca.simulator.web_api import router as simulator_router


logger = logging.getLogger(__name__)


# Global resources for cleanup
discovery_server = None
status_poller = None
powerbox = None


def shutdown() -> None:
    if discovery_server:
        discovery_server.stop()
    if status_poller:
        status_poller.stop()
    if powerbox:
        powerbox.disconnect()


def signal_handler(signum, frame):
    """Handle shutdown signals (SIGINT, SIGTERM)."""
    logger.info(f"Received signal {signum}, shutting down...")
    shutdown()
    sys.exit(0)


def resolve_serial_port(config: AppConfig, config_path: Optional[str]) -> str:
    """
    Pick the serial port: explicit config first, then auto-discovery.

    A discovered port is written back to the config file.
    """
    if config.serial.port:
        logger.info(f"Using configured port: {config.serial.port}")
        return config.serial.port

    if not config.serial.auto_discover:
        logger.error("No serial port specified and auto-discover is disabled")
        logger.error("Please set 'serial.port' in config.json or enable 'serial.auto_discover'")
        sys.exit(1)

    logger.info("Auto-discovering power box...")
    available_ports = list_available_ports()
    if available_ports:
        logger.info(f"Available serial ports: {', '.join(p.name for p in available_ports)}")
    else:
        logger.warning("No serial ports found on system")

    device = find_first_powerbox(
        timeout_seconds=config.serial.scan_timeout_seconds,
        baud=config.serial.baud,
    )
    if device is None:
        logger.error("No power box found on any serial port")
        logger.error("Please connect the device or specify the port in config.json")
        sys.exit(1)

    logger.info(f"Auto-discovered {device.device_name} on {device.port}")
    config.serial.port = device.port
    try:
        save_config(config, config_path)
    except ConfigurationError as e:
        logger.warning(f"Failed to save discovered port: {e}")

    return device.port


def main():
    """Main application entry point."""
    global discovery_server, status_poller, powerbox

    parser = argparse.ArgumentParser(description="Power Box ASCOM Alpaca Driver")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (default: $POWERBOX_ALPACA_CONFIG or config.json)"
    )
    parser.add_argument(
        "--simulator",
        action="store_true",
        help="Use the simulated power box regardless of config"
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.logging)

    logger.info("=" * 60)
    logger.info(f"Power Box ASCOM Alpaca Driver v{__version__}")
    logger.info("=" * 60)

    use_simulator = args.simulator or config.simulator.enabled

    transport: LinkTransport
    if use_simulator:
        logger.info("Using SIMULATOR mode")
        transport = MockPowerBox(config.simulator)
    else:
        logger.info("Using REAL HARDWARE mode")
        transport = SerialTransport(
            resolve_serial_port(config, args.config),
            baud=config.serial.baud,
            timeout_seconds=config.serial.timeout_seconds,
        )

    connection = ConnectionManager(
        transport,
        attempts=config.serial.handshake_attempts,
        retry_delay_seconds=config.serial.handshake_retry_delay_seconds,
    )
    powerbox = PowerBox(connection, config.powerbox, max_reply_bytes=config.serial.max_reply_bytes)

    try:
        powerbox.connect()
    except PowerBoxException as e:
        logger.error(f"Initial connection failed: {e}")
        logger.warning("Serving anyway; clients can retry through PUT /connected")

    status_poller = StatusPoller(powerbox, config.powerbox.poll_interval_seconds)
    status_poller.start()

    app = create_app(config, powerbox)
    app.state.poller = status_poller
    app.state.simulator = transport if use_simulator else None

    if use_simulator:
        app.include_router(simulator_router)

    server_port = config.server.port

    if config.server.discovery_enabled:
        discovery_server = DiscoveryServer(server_port)
        try:
            discovery_server.start()
        except OSError as e:
            logger.error(f"Failed to start discovery server: {e}")
            logger.warning("Continuing without discovery (clients must be pointed at the server)")
            discovery_server = None

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info(f"Starting Alpaca API server on {config.server.ip}:{server_port}")
    logger.info("Press Ctrl+C to stop")

    try:
        uvicorn.run(
            app,
            host=config.server.ip,
            port=server_port,
            log_level=config.logging.level.lower(),
            access_log=False
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        shutdown()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
