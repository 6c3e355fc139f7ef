import argparse
import os
from dataclasses import dataclass
from typing import Any

import orjson

from wlstreamer import __version__
from wlstreamer.core import EVENT_NAMES, FOCUS_EVENTS
from wlstreamer.errors import ConfigError

DESCRIPTION = (
    "Wrapper around wf-recorder and ffmpeg that automatically switches the screen "
    "being recorded based on current window focus. If there are no screens "
    "available for streaming, a black screen will be shown instead."
)

EPILOG = """\
DIFFERENT RESOLUTIONS

When running outputs with different resolutions, the resulting stream will be the
smallest possible resolution that can fit all output resolutions. For example, two
outputs, one 1600x1200, another 1920x1080, will result in an output stream of
1920x1200. Any remaining space will be padded black. With one 640x480 and one
1920x1080 output, the stream will be 1920x1080 and only the smaller screen is padded.

To support this, wlstreamer needs a v4l2loopback device for each resolution,
including the combined one if it differs from every output. The first example needs
3 devices, the second needs 2. If all outputs share a resolution, only the output
device is needed.

With -d 3 and two devices needed, /dev/video3 and /dev/video4 are used, and
/dev/video3 is the device to read from in other applications.

DYNAMICALLY CHANGING RESOLUTIONS

Changing the resolution of an output works as long as there are enough loopback
devices for the new resolutions. A resolution wider or taller than the combined
resolution computed at startup will fail, since a v4l2loopback device cannot change
its format while in use.
"""

SETTINGS_KEYS = {
    "devices_from",
    "not_ws",
    "not_screen",
    "recorder",
    "transcoder",
    "framerate",
    "scaler_delay",
    "events",
    "verbose",
}


@dataclass(frozen=True)
class Config:
    devices_from: int = 0
    screen_blacklist: frozenset[str] = frozenset()
    workspace_blacklist: frozenset[int] = frozenset()
    verbose: bool = False
    recorder: str = "wf-recorder"
    transcoder: str = "ffmpeg"
    framerate: int = 25
    # seconds to let the recorder start writing before the scaler opens its device
    scaler_delay: float = 0.1
    events: tuple[str, ...] = FOCUS_EVENTS


def default_settings_path() -> str:
    xdg_config = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return os.path.join(xdg_config, "wlstreamer", "settings.json")


def ensure_default_settings_exist(destination: str) -> None:
    if os.path.exists(destination):
        return

    os.makedirs(os.path.dirname(destination), exist_ok=True)
    template = os.path.join(os.path.dirname(__file__), "settings.json")
    with open(template, "rb") as src, open(destination, "wb") as dest:
        dest.write(src.read())


def load_settings(settings_path: str | None = None) -> dict[str, Any]:
    """
    Reads a settings file. Without an explicit path the default location is
    used, and populated from the bundled template the first time.
    """
    if settings_path is None:
        path = default_settings_path()
        ensure_default_settings_exist(path)
    elif not os.path.exists(path := settings_path):
        raise ConfigError(f"Path to file does not exist: {path}")

    try:
        with open(path, "rb") as f:
            settings = orjson.loads(f.read())
    except orjson.JSONDecodeError as e:
        raise ConfigError(f"Invalid json in {path}: {e}") from e

    if not isinstance(settings, dict):
        raise ConfigError(f"{path} must contain a json object")
    if unknown := settings.keys() - SETTINGS_KEYS:
        raise ConfigError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")
    return settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wlstreamer",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--not-ws",
        metavar="WS_NUM",
        type=int,
        action="append",
        default=[],
        help="Do not show this workspace. Can be used multiple times. Example: 3",
    )
    parser.add_argument(
        "--not-screen",
        metavar="SCREEN",
        action="append",
        default=[],
        help="Do not show this screen. Can be used multiple times. Example: HDMI-A-1",
    )
    parser.add_argument(
        "-d",
        "--devices-from",
        metavar="ID",
        type=int,
        default=None,
        help="Use video devices starting at ID. Defaults to 0. /dev/videoID will be "
        "used as output. See DIFFERENT RESOLUTIONS below.",
    )
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--settings",
        metavar="PATH",
        default=None,
        help="Settings file, defaults to $XDG_CONFIG_HOME/wlstreamer/settings.json",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"v{__version__}",
        help="Display version and exit",
    )
    return parser


def build_config(settings: dict[str, Any], args: argparse.Namespace) -> Config:
    """Command line flags win over the settings file, blacklists are merged."""
    events = settings.get("events", list(FOCUS_EVENTS))
    if not isinstance(events, list) or not events or not all(
        isinstance(e, str) and e in EVENT_NAMES for e in events
    ):
        raise ConfigError(f"events must be a list of {', '.join(sorted(EVENT_NAMES))}")

    try:
        devices_from = (
            args.devices_from
            if args.devices_from is not None
            else int(settings.get("devices_from", 0))
        )
        config = Config(
            devices_from=devices_from,
            screen_blacklist=frozenset(
                [*map(str, settings.get("not_screen", [])), *args.not_screen]
            ),
            workspace_blacklist=frozenset(
                [*map(int, settings.get("not_ws", [])), *args.not_ws]
            ),
            verbose=args.verbose or bool(settings.get("verbose", False)),
            recorder=str(settings.get("recorder", Config.recorder)),
            transcoder=str(settings.get("transcoder", Config.transcoder)),
            framerate=int(settings.get("framerate", Config.framerate)),
            scaler_delay=float(settings.get("scaler_delay", Config.scaler_delay)),
            events=tuple(events),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid setting: {e}") from e

    if config.devices_from < 0:
        raise ConfigError("devices_from must not be negative")
    if config.framerate <= 0:
        raise ConfigError("framerate must be positive")
    if config.scaler_delay < 0:
        raise ConfigError("scaler_delay must not be negative")
    return config


def parse_config(argv: list[str] | None = None) -> Config:
    args = build_parser().parse_args(argv)
    return build_config(load_settings(args.settings), args)
