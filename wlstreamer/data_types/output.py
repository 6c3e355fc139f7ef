from typing import NotRequired, TypedDict

from wlstreamer.data_types.common import Rectangle


class Mode(TypedDict):
    width: int
    height: int
    refresh: int


class Output(TypedDict):
    """
    The subset of a `get_outputs` entry we read. Disabled outputs are reported
    with `active` false and without a `current_mode`.
    """

    name: str
    rect: Rectangle
    active: NotRequired[bool]
    current_mode: NotRequired[Mode]
