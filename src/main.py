"""
hostbus - Application Entry Point
=================================

Runs an in-process host around the event bus:

- Config and logging setup
- ApplicationContext (EventBus, StagedLoader, LifecycleController)
- Modules from `core.loader.modules.{bootstrap,runtime}` registered
- asyncio's unhandled-exception hook bridged into the host fatal signal
- Host readiness fired, then wait for SIGTERM / Ctrl-C or a shutdown event
- Graceful shutdown

Run with `python -m src.main`.
"""

import asyncio
import signal
import sys
import time
from typing import Any, List

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.infra.application_context import ApplicationContext
from src.core.loader import Phase
from src.core.logging.logger import LogContext, get_logger, shutdown_logging
from src.host.sources import HostBindings, bridge_loop_exceptions

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================

def _configured_list(key: str) -> List[str]:
    value = ConfigManager.get(key, [])
    if not isinstance(value, list):
        logger.warning(
            "Config value is not a list, ignoring",
            extra={"config_key": key, "value_type": type(value).__name__},
        )
        return []
    return [str(item) for item in value]


def _startup() -> ApplicationContext:
    """Build the application context over an in-process host."""
    logger.info(
        "========== HOSTBUS INITIALIZATION START ==========",
        extra={
            "config": Config.get_config_summary(),
            "env": Config.get_load_report().summary(),
        },
    )

    ConfigManager.initialize(Config.CONFIG_DIR)
    logger.info(
        "✓ Config manager initialized",
        extra={"config_files": ConfigManager.loaded_files()},
    )

    host = HostBindings.in_process(*_configured_list("core.host.sources"))
    context = ApplicationContext(host)

    for phase in Phase:
        specifiers = _configured_list(f"core.loader.modules.{phase.value}")
        context.loader.register_many(specifiers, phase)
        if specifiers:
            logger.info(
                "✓ %d module(s) registered for %s phase",
                len(specifiers),
                phase.value,
            )

    return context


# ============================================================================
# Application Entrypoint
# ============================================================================

async def main() -> None:
    """
    hostbus entry point.

    Lifecycle:
        1. Build the application context
        2. Bridge loop exceptions and SIGTERM
        3. Initialize, fire host readiness, wait for module loads
        4. Wait for shutdown, then tear down
    """
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    context = _startup()
    host = context.lifecycle.host
    restore_exception_handler = bridge_loop_exceptions(loop, host.fatal)
    _install_signal_handlers(loop, stop)

    def on_shutdown(payload: Any) -> None:
        logger.warning("Shutdown event received; stopping host")
        stop.set()

    context.bus.on(context.lifecycle.shutdown_event, on_shutdown)

    try:
        async with LogContext(component="main", operation="startup"):
            context.initialize()
            host.ready.fire({"started_at": time.time(), "environment": Config.ENVIRONMENT})
            await context.wait_until_loaded()

            logger.info(
                "========== HOSTBUS READY ==========",
                extra={"status": context.get_status()},
            )

        await stop.wait()

    finally:
        restore_exception_handler()
        await context.shutdown()
        logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Process Startup
# ============================================================================

def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop: asyncio.Event) -> None:
    """Install SIGTERM / SIGINT handlers for graceful shutdown."""
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform (likely Windows)")
            return
    logger.debug("SIGTERM/SIGINT handlers installed")


if __name__ == "__main__":
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        loop.run_until_complete(main())
    except KeyboardInterrupt:
        logger.info("Host manually stopped via keyboard interrupt.")
    except Exception as exc:
        logger.critical(f"Startup failure: {exc}", exc_info=True)
        sys.exit(1)
    finally:
        loop.close()
        logger.info("Event loop closed.")
        shutdown_logging()
