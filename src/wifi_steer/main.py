"""Main entry point for the wifi-steer daemon."""

import argparse
import logging
import signal
import sys
import time
from typing import NoReturn

from wifi_steer import __version__
from wifi_steer.config import ConfigError, ConfigManager
from wifi_steer.daemon import WirelessDaemon
from wifi_steer.network.dbus_client import DBusNetworkManager
from wifi_steer.network.errors import NetworkManagerError
from wifi_steer.network.in_memory_client import InMemoryNetworkManager
from wifi_steer.network.nm_client import NetworkManagerClient

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the application.

    Args:
        debug: If True, set log level to DEBUG, otherwise INFO
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed command-line arguments
    """
    parser = argparse.ArgumentParser(
        description="wifi-steer - Track wireless access points and steer connections between bands"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--mock-nm",
        action="store_true",
        help="Use a simulated network-management service instead of NetworkManager",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.yml",
        help="Path to configuration file (default: config.yml)",
    )
    return parser.parse_args()


def _load_config(config_path: str) -> ConfigManager:
    """Load and validate configuration.

    Args:
        config_path: Path to configuration file

    Returns:
        Initialized ConfigManager

    Raises:
        SystemExit: If configuration is invalid
    """
    try:
        config = ConfigManager(user_config_path=config_path)

        steering = config.get_steering_config()
        logger.info(
            "Steering %s (threshold %d, gain %d, debounce %.1fs)",
            "enabled" if steering["enabled"] else "disabled",
            steering["strength_threshold"],
            steering["min_strength_gain"],
            steering["scan_debounce"],
        )
        return config

    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)


def _init_client(config: ConfigManager, mock_mode: bool) -> NetworkManagerClient:
    """Create the network-management client.

    Args:
        config: Configuration manager
        mock_mode: If True, use the in-memory client

    Returns:
        Client for the configured backend
    """
    if mock_mode or config.get_backend() == "memory":
        logger.info("  - Using InMemoryNetworkManager (mock mode)")
        return InMemoryNetworkManager()

    logger.info("  - Using DBusNetworkManager (system bus)")
    return DBusNetworkManager()


def _start_web_server(daemon: WirelessDaemon, config: ConfigManager) -> None:
    """Start the web admin interface in a background thread.

    Args:
        daemon: WirelessDaemon instance
        config: Configuration manager
    """
    # pylint: disable=import-outside-toplevel
    from threading import Thread

    import uvicorn

    from wifi_steer.web.app import create_app

    web_config = config.get_web_config()
    web_app = create_app(daemon)

    def run_web_server() -> None:
        uvicorn.run(
            web_app,
            host=web_config["host"],
            port=web_config["port"],
            log_level="warning",
        )

    web_thread = Thread(target=run_web_server, daemon=True, name="WebServer")
    web_thread.start()

    logger.info("  - Web admin interface started at http://%s:%d", web_config["host"], web_config["port"])


def main() -> NoReturn:
    """Main application entry point."""
    args = parse_args()
    setup_logging(args.debug)

    logger.info("=" * 60)
    logger.info("wifi-steer v%s", __version__)
    logger.info("=" * 60)

    config = _load_config(args.config)

    logger.info("Initializing network client...")
    client = _init_client(config, args.mock_nm)

    steering = config.get_steering_config()
    daemon = WirelessDaemon(
        client,
        steering_enabled=steering["enabled"],
        strength_threshold=steering["strength_threshold"],
        min_strength_gain=steering["min_strength_gain"],
        scan_debounce=steering["scan_debounce"],
        ignore_strength=steering["ignore_strength_below"],
    )

    # Set up signal handlers for graceful shutdown
    shutdown_requested = False

    def signal_handler(signum: int, _frame: object) -> None:
        nonlocal shutdown_requested
        if shutdown_requested:
            logger.warning("Force quit!")
            sys.exit(1)
        logger.info("Shutdown requested (signal %d)...", signum)
        shutdown_requested = True

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if config.get_web_config()["enabled"]:
        logger.info("Starting web admin interface...")
        try:
            _start_web_server(daemon, config)
        except Exception as e:
            logger.error("Failed to start web admin interface: %s", e)
            logger.warning("Continuing without web interface...")

    logger.info("Starting wireless daemon...")
    try:
        daemon.start()
    except NetworkManagerError as e:
        logger.error("Failed to start wireless daemon: %s", e)
        sys.exit(1)

    logger.info("Press Ctrl+C to stop")

    try:
        while not shutdown_requested:
            time.sleep(0.1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")

    logger.info("Stopping wireless daemon...")
    try:
        daemon.stop()
    except Exception as e:
        logger.warning("Error stopping wireless daemon: %s", e)

    logger.info("Goodbye!")
    sys.exit(0)


if __name__ == "__main__":
    main()
