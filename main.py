#!/usr/bin/env python3
"""
Cloudflare Domain Provisioner - process entry point
Usage: main.py <yandex_api_key> [proxy_auth] [port]
"""

import os
import sys
import signal
import asyncio
import logging
from typing import List, Optional

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)

# Prevent httpx from logging request URLs carrying the translator key
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

from health_monitor import append_fatal_error
from service_config import ConfigurationError, ServiceConfig, DEFAULT_FATAL_LOG_PATH
from web_server import start_web_server, stop_web_server

# Global shutdown flag
shutdown_requested = False
fatal_error_seen = False


def install_excepthook(log_path: str):
    """Append uncaught exceptions to the fatal log before the interpreter exits"""
    def excepthook(exc_type, exc_value, exc_traceback):
        logger.critical("💥 Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))
        append_fatal_error(exc_value, log_path)
    sys.excepthook = excepthook


def make_loop_exception_handler(log_path: str, stop_event: asyncio.Event):
    """
    Event loop handler: log uncaught errors to the fatal sink and stop the server

    Message-only diagnostics and connection-level OSErrors (a client
    resetting its socket) are logged and the server keeps running.
    """
    def handler(loop, context):
        global fatal_error_seen
        error = context.get('exception')
        if error is None or isinstance(error, OSError):
            logger.warning(f"⚠️ Event loop reported: {context.get('message', 'no message')} {error!r}")
            return
        logger.critical(f"💥 Unhandled error in event loop: {error!r}")
        append_fatal_error(error, log_path)
        fatal_error_seen = True
        stop_event.set()
    return handler


async def run_server(config: ServiceConfig) -> bool:
    """Run the web server until a shutdown signal or fatal error"""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    loop.set_exception_handler(make_loop_exception_handler(config.fatal_log_path, stop_event))

    def request_stop(signum):
        global shutdown_requested
        shutdown_requested = True
        logger.info(f"🛑 Shutdown signal received ({signum}), initiating graceful shutdown...")
        stop_event.set()

    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(signum, request_stop, signum)
        except NotImplementedError:
            logger.warning(f"⚠️ Signal handler for {signum} not supported on this platform")

    runner = await start_web_server(config)
    try:
        await stop_event.wait()
    finally:
        await stop_web_server(runner)

    return not fatal_error_seen


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    argv = sys.argv[1:] if argv is None else argv

    try:
        config = ServiceConfig.from_args(argv)
    except ConfigurationError as e:
        logger.critical(f"💥 {e}")
        append_fatal_error(e, os.getenv('FATAL_LOG_PATH') or DEFAULT_FATAL_LOG_PATH)
        return 1

    install_excepthook(config.fatal_log_path)
    logger.info("🚀 Starting Cloudflare domain provisioner...")

    try:
        result = asyncio.run(run_server(config))
    except Exception as e:
        logger.critical(f"💥 Critical failure: {e}")
        append_fatal_error(e, config.fatal_log_path)
        return 1

    logger.info("✅ Provisioner stopped normally" if result else "⚠️ Provisioner stopped with error")
    return 0 if result else 1


if __name__ == '__main__':
    sys.exit(main())
