import asyncio
import logging
from asyncio.subprocess import DEVNULL, Process
from dataclasses import dataclass

import psutil

from wlstreamer.core import SwayIPCConnection
from wlstreamer.errors import OutputNotFoundError, SpawnError, TerminationError
from wlstreamer.registry import (
    Resolution,
    ResolutionRegistry,
    device_path,
    output_resolution,
)
from wlstreamer.settings import Config

logger = logging.getLogger(__name__)

RAW_V4L2 = ["-vcodec", "rawvideo", "-pix_fmt", "yuyv422", "-f", "v4l2"]
# seconds to wait for killed children to exit on shutdown
REAP_TIMEOUT = 5


@dataclass(frozen=True)
class ActivePipeline:
    """
    The processes currently feeding the output device. `target` is the
    recorded output, or None while streaming black.
    """

    target: str | None = None
    processes: tuple[Process, ...] = ()


def black_command(config: Config, canonical: Resolution, device: int) -> list[str]:
    return [
        config.transcoder,
        "-f",
        "lavfi",
        "-i",
        f"color=c=black:s={canonical}:r={config.framerate}",
        *RAW_V4L2,
        device_path(device),
    ]


def recorder_command(config: Config, output_name: str, device: int) -> list[str]:
    return [
        config.recorder,
        "--muxer=v4l2",
        "--codec=rawvideo",
        "--pixel-format=yuyv422",
        f"--output={output_name}",
        f"--file={device_path(device)}",
    ]


def scaler_command(
    config: Config, canonical: Resolution, source: int, sink: int
) -> list[str]:
    w, h = canonical
    return [
        config.transcoder,
        "-i",
        device_path(source),
        "-vf",
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1",
        *RAW_V4L2,
        device_path(sink),
    ]


async def spawn(argv: list[str], verbose: bool) -> Process:
    stdio = None if verbose else DEVNULL
    logger.debug("Starting %s", " ".join(argv))
    try:
        return await asyncio.create_subprocess_exec(
            *argv, stdin=DEVNULL, stdout=stdio, stderr=stdio
        )
    except OSError as e:
        raise SpawnError(argv[0], e) from e


def terminate(process: Process) -> None:
    """
    Kills `process` and its children without waiting for them to exit. A
    process that is already gone is not an error.
    """
    try:
        parent = psutil.Process(process.pid)
        children = parent.children(recursive=True)
        parent.kill()
    except psutil.NoSuchProcess:
        return
    except psutil.AccessDenied as e:
        raise TerminationError(process.pid, e) from e

    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            raise TerminationError(child.pid, e) from e


class PipelineSupervisor:
    def __init__(
        self, config: Config, registry: ResolutionRegistry, ipc: SwayIPCConnection
    ):
        self.config = config
        self.registry = registry
        self.ipc = ipc
        self.pipeline = ActivePipeline()
        self.reapers: set[asyncio.Task] = set()

    @property
    def target(self) -> str | None:
        return self.pipeline.target

    def reap(self, process: Process) -> None:
        task = asyncio.create_task(process.wait())
        self.reapers.add(task)
        task.add_done_callback(self.reapers.discard)

    def stop(self) -> None:
        """Kills every owned process and leaves an empty pipeline behind."""
        processes, self.pipeline = self.pipeline.processes, ActivePipeline()
        failures = []
        for process in processes:
            logger.debug("Killing child %d", process.pid)
            try:
                terminate(process)
            except TerminationError as e:
                failures.append(e)
                continue
            # only a killed child is guaranteed to exit
            self.reap(process)

        if failures:
            raise failures[0]

    async def stream_black(self) -> ActivePipeline:
        argv = black_command(
            self.config, self.registry.canonical, self.registry.canonical_device
        )
        return ActivePipeline(None, (await spawn(argv, self.config.verbose),))

    async def record_output(self, output_name: str) -> ActivePipeline:
        outputs = await self.ipc.get_outputs()
        output = next((o for o in outputs if o["name"] == output_name), None)
        if output is None or (resolution := output_resolution(output)) is None:
            raise OutputNotFoundError(output_name)

        device = self.registry.allocate(resolution)
        logger.debug("Using device number %d", device)

        recorder = await spawn(
            recorder_command(self.config, output_name, device), self.config.verbose
        )
        if device == self.registry.canonical_device:
            return ActivePipeline(output_name, (recorder,))

        logger.debug(
            "%s is smaller than %s, scaling through %s",
            resolution,
            self.registry.canonical,
            self.config.transcoder,
        )
        # TODO: replace the fixed delay with polling the device until the
        # recorder has written its first frame
        await asyncio.sleep(self.config.scaler_delay)

        argv = scaler_command(
            self.config, self.registry.canonical, device, self.registry.canonical_device
        )
        try:
            scaler = await spawn(argv, self.config.verbose)
        except SpawnError:
            terminate(recorder)
            self.reap(recorder)
            raise
        return ActivePipeline(output_name, (recorder, scaler))

    async def swap(self, target: str | None) -> None:
        """Replaces the running pipeline with one recording `target`."""
        self.stop()
        if target is None:
            self.pipeline = await self.stream_black()
            logger.info("Recording black screen")
        else:
            self.pipeline = await self.record_output(target)
            logger.info("Recording %s", target)

    async def close(self) -> None:
        try:
            self.stop()
        finally:
            await self.wait_reapers()

    async def wait_reapers(self) -> None:
        if not self.reapers:
            return

        _, pending = await asyncio.wait(self.reapers, timeout=REAP_TIMEOUT)
        for task in pending:
            logger.warning("Gave up waiting for a killed child to exit")
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
