class WlStreamerError(Exception):
    """Base class for every error the controller raises on purpose."""


class IPCError(WlStreamerError):
    """The compositor could not be reached or answered with garbage."""


class OutputNotFoundError(WlStreamerError):
    def __init__(self, name: str):
        super().__init__(f"Could not find output {name}")
        self.name = name


class SpawnError(WlStreamerError):
    def __init__(self, program: str, reason: OSError):
        super().__init__(f"Could not start {program}: {reason}")
        self.program = program


class TerminationError(WlStreamerError):
    def __init__(self, pid: int, reason: Exception):
        super().__init__(f"Could not terminate child {pid}: {reason}")
        self.pid = pid


class NoOutputsError(WlStreamerError):
    """The compositor reported no active outputs to size the stream from."""


class ConfigError(WlStreamerError):
    pass
