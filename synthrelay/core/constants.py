"""Package-wide constants for the synthrelay runtime."""

import os
import platform

from rich import print

PACKAGE_NAME = "synthrelay"
VERSION = "0.1.0"
AUTHOR = "synthrelay"
REPO_GITHUB = "https://github.com/synthrelay/synthrelay"

BANNER = f"""
                  _   _                  _
   ___ _   _ _ __ | |_| |__  _ __ ___| | __ _ _   _
  / __| | | | '_ \\| __| '_ \\| '__/ _ \\ |/ _` | | | |
  \\__ \\ |_| | | | | |_| | | | | |  __/ | (_| | |_| |
  |___/\\__, |_| |_|\\__|_| |_|_|  \\___|_|\\__,_|\\__, |
       |___/                                  |___/
            one controller, many synths  v{VERSION}
"""


def banner() -> None:
    """Render the package banner in the terminal."""
    print(BANNER)


# Queue Store keys
ACTIVE_CONTROLLER_KEY = "webrtc:active_ctrl_client"
MESSAGE_KEY_PREFIX = "webrtc:messages"
SESSION_KEY_PREFIX = "webrtc:sessions"

# Sentinel accepted by the lock release path regardless of the current owner
FORCE_DEACTIVATE = "force-deactivate"

# Routed control-socket message types
SIGNAL_TYPES = ("offer", "answer", "ice-candidate")

if platform.system() == "Windows":
    HOME = os.environ["USERPROFILE"]
    SLASH = "\\"
else:
    HOME = os.environ.get("HOME", "/tmp")
    SLASH = "/"
