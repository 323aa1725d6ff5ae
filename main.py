import asyncio
import logging
import signal
import sys

# It's important to set up logging before other imports that might use it.
from core.logger import setup_logging
from config import config

setup_logging()
logger = logging.getLogger(__name__)


def install_signal_handlers(controller) -> None:
    """Route SIGINT/SIGTERM to ``controller.stop()`` so the browser is always closed."""
    loop = asyncio.get_running_loop()

    def request_stop(signame: str) -> None:
        logger.info(f"Received {signame}, stopping automation...")
        loop.create_task(controller.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop, sig.name)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is not available on Windows event loops
            logger.debug(f"Signal handler for {sig.name} not installed")


# --- Main Orchestrator ---
async def main() -> int:
    """Run one LinkedIn connection automation and return the process exit code."""
    from core.controller import AutomationController
    from core.status import WorkflowStep

    logger.info(
        f"Starting LinkedIn connection automation: min mutual connections "
        f"{config.connections.min_mutual_connections}, max connections {config.connections.max_connections}, "
        f"headless={config.browser.headless}"
    )

    controller = AutomationController(config)
    controller.on_status_change(
        lambda status: logger.debug(
            f"Status: {status.current_step.value} "
            f"({status.items_succeeded}/{status.items_processed} of {status.item_limit})"
        )
    )
    install_signal_handlers(controller)

    result = await controller.run()
    status = result.status

    if result.success:
        logger.info(
            f"Automation completed: {status.items_succeeded} connection requests sent, "
            f"{status.items_processed} people evaluated"
        )
        return 0

    if status.current_step == WorkflowStep.ERROR:
        logger.error(f"Automation failed: {status.last_error}")
        return 1

    logger.warning(f"Automation stopped before completion: {result.error}")
    return 130


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
