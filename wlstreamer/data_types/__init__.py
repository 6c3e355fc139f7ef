from wlstreamer.data_types.common import Rectangle
from wlstreamer.data_types.output import Mode, Output
from wlstreamer.data_types.workspace import Workspace

__all__ = ["Mode", "Output", "Rectangle", "Workspace"]
