import logging

from wlstreamer.data_types import Workspace
from wlstreamer.settings import Config

logger = logging.getLogger(__name__)


def select(config: Config, workspaces: list[Workspace]) -> list[Workspace]:
    """
    Returns the workspaces that may be recorded, focused ones first. Otherwise
    the order of `workspaces` is kept.
    """
    candidates = [
        ws
        for ws in workspaces
        if ws["visible"]
        and ws["output"] not in config.screen_blacklist
        and ws["num"] not in config.workspace_blacklist
    ]
    logger.debug("Filtered workspaces %s", candidates)

    # sorted is stable, so this only moves focused workspaces to the front
    return sorted(candidates, key=lambda ws: not ws["focused"])


def current_target(candidates: list[Workspace]) -> str | None:
    return candidates[0]["output"] if candidates else None
