"""Main entry point for the gateway callback server."""

import signal
import sys
from typing import Any

from acquired_gateway.bootstrap import build_gateway
from acquired_gateway.config import Settings
from acquired_gateway.logging_config import configure_logging, get_logger
from acquired_gateway.receiver.server import CallbackServer

logger = get_logger(__name__)


def main() -> None:
    settings = Settings()
    configure_logging(
        log_level=settings.log_level,
        format_as_json=settings.log_json,
        enabled=settings.debug_log,
    )

    gateway = build_gateway(settings)
    server = CallbackServer(gateway, settings, host=settings.server_host, port=settings.server_port)

    def signal_handler(sig: Any, frame: Any) -> None:
        logger.info("received_signal", signal=signal.Signals(sig).name)
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)

    logger.info(
        "gateway_starting",
        environment=settings.environment,
        available=gateway.is_available(),
    )

    gateway.schedule_service.start()
    try:
        server.serve_forever()
    except Exception as e:
        logger.error("fatal_error", error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        gateway.schedule_service.stop()
        logger.info("gateway_stopped")


if __name__ == "__main__":
    main()
