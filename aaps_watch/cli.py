"""
Command line entry point for the watch face poller.

The poller watches the mailbox directory shared with the phone application,
keeps the watch face state current and logs every redraw.

Usage:
    aaps-watch --config config.yaml
    aaps-watch --storage-dir /data/aaps --bridge-port 28891
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .config import Settings
from .constants import DEFAULT_BRIDGE_PORT, DEFAULT_POLL_INTERVAL
from .exceptions import ConfigurationError, ErrorCode
from .models import FaceView
from .poller import WatchFacePoller

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

def load_yaml_config(config_path: str) -> Dict[str, Any]:
    """
    Load settings overrides from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Mapping of setting names to values

    Raises:
        ConfigurationError: If the file is missing or not a mapping
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(
            message=f"Config file not found: {config_path}",
            error_code=ErrorCode.CONFIG_FILE_MISSING,
        )

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(message="Config file is not valid YAML", original_error=e)

    if not isinstance(data, dict):
        raise ConfigurationError(
            message="Config file must contain a mapping",
            details=f"Got {type(data).__name__}",
        )
    return data


def load_settings(args: argparse.Namespace) -> Settings:
    """
    Build settings from available sources.

    Priority (highest to lowest):
    1. Command line arguments
    2. Config file (if --config specified)
    3. Environment variables (AAPS_WATCH_*) and .env

    Raises:
        ConfigurationError: If the resulting settings are invalid
    """
    data: Dict[str, Any] = {}
    if args.config:
        logger.info(f"Loading configuration from {args.config}")
        data.update(load_yaml_config(args.config))

    overrides = {
        "storage_dir": args.storage_dir,
        "bridge_host": args.bridge_host,
        "bridge_port": args.bridge_port,
        "poll_interval": args.interval,
    }
    data.update({key: value for key, value in overrides.items() if value is not None})
    if args.verbose:
        data["log_level"] = "DEBUG"

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigurationError(details=str(e), original_error=e)


def log_face(view: FaceView) -> None:
    """Log the face contents on every redraw."""
    logger.info(
        f"Face: {view.glucose_text} {view.delta_text} {view.trend or ''} "
        f"({view.minutes_ago} min) BAS {view.basal_text} COB {view.cob_text} "
        f"IOB {view.iob_text} [{view.buffer_lengths}]"
    )


# =============================================================================
# CLI
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Watch face poller for the AndroidAPS companion mailbox",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Using config file:
  aaps-watch --config config.yaml

  # Using command line arguments:
  aaps-watch --storage-dir /data/aaps --bridge-host 127.0.0.1

  # Poll once and exit (useful for testing):
  aaps-watch --config config.yaml --once
        """,
    )

    parser.add_argument(
        "--config", "-c",
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--storage-dir",
        help="Mailbox directory shared with the phone application",
    )
    parser.add_argument(
        "--bridge-host",
        help="Phone command bridge host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--bridge-port",
        type=int,
        help=f"Phone command bridge port (default: {DEFAULT_BRIDGE_PORT})",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help=f"Poll interval in seconds (default: {DEFAULT_POLL_INTERVAL})",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Poll once and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    try:
        settings = load_settings(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.full_message}")
        return 1

    logging.getLogger().setLevel(settings.log_level)
    poller = WatchFacePoller(settings, on_redraw=log_face)

    if args.once:
        poller.start()
        return 0

    poller.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
