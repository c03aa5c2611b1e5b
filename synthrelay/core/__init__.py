"""Core runtime exports for the synthrelay package."""

from synthrelay.core.constants import (
    AUTHOR,
    BANNER,
    HOME,
    PACKAGE_NAME,
    REPO_GITHUB,
    VERSION,
    banner,
)

__all__ = [
    "AUTHOR",
    "BANNER",
    "HOME",
    "PACKAGE_NAME",
    "REPO_GITHUB",
    "VERSION",
    "banner",
]
