import logging
from collections.abc import Iterable
from typing import NamedTuple

from wlstreamer.data_types import Output
from wlstreamer.errors import NoOutputsError

logger = logging.getLogger(__name__)


class Resolution(NamedTuple):
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def output_resolution(output: Output) -> Resolution | None:
    """The resolution of an active output, `None` for a disabled one."""
    mode = output.get("current_mode")
    if output.get("active") is False or not mode:
        return None
    return Resolution(mode["width"], mode["height"])


def canonical_resolution(resolutions: Iterable[Resolution]) -> Resolution:
    """
    The smallest resolution that fits every one of `resolutions`. Not
    necessarily the resolution of any real output: 1600x1200 and 1920x1080
    combine to 1920x1200.
    """
    resolutions = list(resolutions)
    if not resolutions:
        raise NoOutputsError("No active outputs to compute a resolution from")
    return Resolution(
        max(r.width for r in resolutions), max(r.height for r in resolutions)
    )


def device_path(index: int) -> str:
    return f"/dev/video{index}"


class ResolutionRegistry:
    """
    Maps every distinct output resolution to a v4l2loopback device index.

    The canonical resolution owns `devices_from`, the device downstream
    consumers read. Other resolutions take the next free index the first time
    they are seen and keep it for the life of the process.
    """

    def __init__(self, canonical: Resolution, devices_from: int = 0):
        self.canonical = canonical
        self.devices_from = devices_from
        self.last_device_index = devices_from
        self.devices: dict[Resolution, int] = {canonical: devices_from}

    @classmethod
    def from_outputs(
        cls, outputs: Iterable[Output], devices_from: int = 0
    ) -> "ResolutionRegistry":
        resolutions = [
            r for output in outputs if (r := output_resolution(output)) is not None
        ]
        registry = cls(canonical_resolution(resolutions), devices_from)
        logger.debug("Combined maximum resolution %s", registry.canonical)
        for resolution in resolutions:
            registry.allocate(resolution)
        return registry

    def allocate(self, resolution: Resolution) -> int:
        if (index := self.devices.get(resolution)) is not None:
            return index

        self.last_device_index += 1
        self.devices[resolution] = self.last_device_index
        logger.debug(
            "Allocated %s for %s", device_path(self.last_device_index), resolution
        )
        return self.last_device_index

    @property
    def canonical_device(self) -> int:
        return self.devices_from
