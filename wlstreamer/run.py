import asyncio
import logging
import sys
from signal import SIGINT, SIGTERM

from wlstreamer.core import SwayIPCConnection
from wlstreamer.errors import OutputNotFoundError, WlStreamerError
from wlstreamer.registry import ResolutionRegistry
from wlstreamer.selector import current_target, select
from wlstreamer.settings import Config, parse_config
from wlstreamer.supervisor import PipelineSupervisor

logger = logging.getLogger(__name__)


async def switch(supervisor: PipelineSupervisor, target: str | None) -> None:
    """
    Swaps to `target`. An output that disappeared since the workspaces were
    listed falls back to the black screen, every other error is fatal.
    """
    try:
        await supervisor.swap(target)
    except OutputNotFoundError as e:
        logger.warning("%s, showing black screen instead", e)
        await supervisor.swap(None)


async def follow_focus(
    config: Config, ipc: SwayIPCConnection, supervisor: PipelineSupervisor
) -> bool:
    """Points the pipeline at the focused output. Returns whether it swapped."""
    target = current_target(select(config, await ipc.get_workspaces()))
    if target == supervisor.target:
        return False

    await switch(supervisor, target)
    return True


async def run_focus_loop(config: Config, ipc: SwayIPCConnection | None = None):
    """
    Starts recording the focused output and keeps following focus until the
    compositor goes away or the task is cancelled.
    """
    if ipc is None:
        ipc = SwayIPCConnection()

    supervisor = None
    try:
        registry = ResolutionRegistry.from_outputs(
            await ipc.get_outputs(), config.devices_from
        )
        supervisor = PipelineSupervisor(config, registry, ipc)

        await switch(
            supervisor, current_target(select(config, await ipc.get_workspaces()))
        )
        async for _ in ipc.subscribe_focus_events(config.events):
            logger.info("Switched focus")
            await follow_focus(config, ipc, supervisor)
    finally:
        if supervisor is not None:
            await supervisor.close()
        await ipc.close()


def run_wlstreamer(config: Config) -> None:
    """
    Adds signal handlers and runs the focus loop until it ends or is interrupted
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    main_task = loop.create_task(run_focus_loop(config))
    loop.add_signal_handler(SIGINT, main_task.cancel)
    loop.add_signal_handler(SIGTERM, main_task.cancel)
    try:
        loop.run_until_complete(main_task)
    except asyncio.CancelledError:
        logger.info("Shutdown completed")
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        asyncio.set_event_loop(None)
        loop.close()


def main(argv: list[str] | None = None) -> int:
    try:
        config = parse_config(argv)
    except WlStreamerError as e:
        print(f"wlstreamer: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        run_wlstreamer(config)
    except WlStreamerError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
