#!/usr/bin/env python3
"""
Mirror Relay - Startup Entry Point

Connects to the Discord gateway and mirrors messages from the configured
source channels to their destination webhooks.

Usage:
    python run_mirror.py [--config CONFIG] [--port PORT] [--no-keep-alive] [--verbose]

Exit status:
    0  stopped normally
    1  gateway invalidated the session (not resumable)
    2  configuration error
"""

import argparse
import logging
import os
import sys

logger = logging.getLogger("mirror.main")


def main():
    parser = argparse.ArgumentParser(
        description="Mirror Relay - Discord channel to webhook mirror"
    )

    parser.add_argument(
        "--config", "-c",
        default=os.environ.get("MIRROR_CONFIG_PATH", "conf/mirror.yaml"),
        help="Configuration file path"
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Environment file loaded before reading configuration"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Keep-alive server port (default: PORT or 3000)"
    )
    parser.add_argument(
        "--no-keep-alive",
        action="store_true",
        help="Do not start the keep-alive HTTP server"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    from mirror_relay.gateway.config import MirrorConfig
    from mirror_relay.gateway.errors import ConfigError, InvalidSessionError
    from mirror_relay.gateway.server import run_mirror
    from mirror_relay.helpers.log_config import configure_logging

    try:
        config = MirrorConfig.load(args.config, env_file=args.env_file)
        if args.port is not None:
            config.port = args.port
        if args.no_keep_alive:
            config.keep_alive = False
        if args.verbose:
            config.debug = True
        config.validate()
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    configure_logging(
        level="DEBUG" if config.debug else "INFO",
        log_file=config.log_file,
        error_log_file=config.error_log_file,
    )

    logger.info("=" * 60)
    logger.info("Mirror Relay - Discord Channel Mirror")
    logger.info("=" * 60)
    logger.info(f"Config:  {config.config_path}")
    logger.info(f"Gateway: {config.gateway_url}")
    if config.keep_alive:
        logger.info(f"Health:  http://{config.host}:{config.port}/api/health")
    logger.info("=" * 60)

    try:
        run_mirror(config)
    except InvalidSessionError as e:
        logger.critical(f"{e}, exiting")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
