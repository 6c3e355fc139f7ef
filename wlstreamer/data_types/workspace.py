from typing import TypedDict

from wlstreamer.data_types.common import Rectangle


class Workspace(TypedDict):
    name: str
    focus: list[int]
    output: str
    focused: bool
    rect: Rectangle
    visible: bool
    num: int
