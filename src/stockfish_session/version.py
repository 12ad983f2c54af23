"""
Stockfish version detection.

Release builds report `major[.minor]`. Development builds report either
`dev-YYYYMMDD-<sha>` or a bare `DDMMYY` date; those are mapped to the most
recent release published on or before the build date.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass

from .exceptions import UnresolvedVersionError

logger = logging.getLogger(__name__)

RELEASES: dict[str, str] = {
    "17.1": "2025-03-30",
    "17.0": "2024-09-06",
    "16.1": "2024-02-24",
    "16.0": "2023-06-30",
    "15.1": "2022-12-04",
    "15.0": "2022-04-18",
    "14.1": "2021-10-28",
    "14.0": "2021-07-02",
    "13.0": "2021-02-19",
    "12.0": "2020-09-02",
    "11.0": "2020-01-18",
    "10.0": "2018-11-29",
}

DEV_BUILD_PATTERN = re.compile(r"^dev-(\d{8})-(\w+)$")  # dev-20221219-61ea1534
DATE_BUILD_PATTERN = re.compile(r"^(\d{2})(\d{2})(\d{2})$")  # 280322 (DDMMYY)
RELEASE_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?$")


@dataclass
class VersionInfo:
    """Structured Stockfish version."""

    full: float = 0.0  # major + minor / 10
    major: int = 0
    minor: int = 0
    patch: str = ""  # Build date of development builds
    sha: str = ""  # Commit hash of development builds
    is_dev_build: bool = False
    text: str = ""  # Token reported by the worker


def release_for_build_date(build_date: datetime.date) -> str:
    """Return the latest release published on or before `build_date`.

    Raises:
        UnresolvedVersionError: If the date predates every known release.
    """
    candidates = [
        (datetime.date.fromisoformat(released), version)
        for version, released in RELEASES.items()
        if datetime.date.fromisoformat(released) <= build_date
    ]
    if not candidates:
        raise UnresolvedVersionError(
            f"No Stockfish release is associated with the build date {build_date.isoformat()}"
        )
    return max(candidates)[1]


def parse_version(version_text: str) -> VersionInfo:
    """Parse the version token from the worker's `id name` line.

    Raises:
        UnresolvedVersionError: If the token cannot be mapped to a version.
    """
    info = VersionInfo(text=version_text)
    release_text = version_text

    try:
        if match := DEV_BUILD_PATTERN.match(version_text):
            info.is_dev_build = True
            info.patch, info.sha = match.group(1), match.group(2)
            build_date = datetime.datetime.strptime(info.patch, "%Y%m%d").date()
            release_text = release_for_build_date(build_date)
        elif match := DATE_BUILD_PATTERN.match(version_text):
            info.is_dev_build = True
            info.patch = version_text
            day, month, year = (int(part) for part in match.groups())
            release_text = release_for_build_date(datetime.date(2000 + year, month, day))
    except ValueError as e:
        raise UnresolvedVersionError(f"Invalid build date in version '{version_text}'") from e

    match = RELEASE_PATTERN.match(release_text)
    if match is None:
        raise UnresolvedVersionError(
            f"Unable to parse Stockfish version '{version_text}'. "
            "You may be using an unsupported version of Stockfish."
        )
    info.major = int(match.group(1))
    info.minor = int(match.group(2) or 0)
    info.full = info.major + info.minor / 10
    logger.debug(f"Parsed version {version_text!r} as {info.major}.{info.minor}")
    return info
