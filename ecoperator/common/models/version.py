import re
from functools import total_ordering
from typing import NamedTuple, Tuple

K0S_SUFFIX = "k0s"

_VERSION_RE = re.compile(
    r"^v?(\d+)\.(\d+)(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z.-]+))?"
    r"(?:\+([0-9A-Za-z.-]+))?$"
)


class VersionInfo(NamedTuple):
    major: int
    minor: int
    micro: int
    prerelease: str
    build: str


def truncate_k0s_suffix(version: str) -> str:
    """Drop the packaging counter after the k0s marker.

    The API server reports ``v1.29.5+k0s`` while release metadata carries
    ``v1.29.5+k0s.1``; both are cut to ``v1.29.5+k0s``.
    """
    idx = version.find(K0S_SUFFIX)
    if idx < 0:
        return version
    return version[: idx + len(K0S_SUFFIX)]


def _prerelease_key(prerelease: str) -> Tuple:
    # a release sorts after all of its pre-releases
    if not prerelease:
        return (1,)
    parts = []
    for part in prerelease.split("."):
        if part.isdigit():
            parts.append((0, int(part), ""))
        else:
            parts.append((1, 0, part))
    return (0, tuple(parts))


@total_ordering
class KubeVersion:
    """Kubernetes version with numeric ordering. Build metadata is ignored."""

    _version: str

    info: VersionInfo

    def __init__(self, version: str, version_info: VersionInfo) -> None:
        self._version = version
        self.info = version_info

    @classmethod
    def from_str(cls, version: str) -> "KubeVersion":
        """Parse a version string, raising ValueError when it is malformed."""
        if not isinstance(version, str):
            raise ValueError(f"invalid version {version!r}")
        match = _VERSION_RE.match(version.strip())
        if match is None:
            raise ValueError(f"invalid version {version!r}")
        major, minor, micro, pre, build = match.groups()
        info = VersionInfo(int(major), int(minor), int(micro or 0), pre or "", build or "")
        return cls(version, info)

    def _key(self) -> Tuple:
        return (
            self.info.major,
            self.info.minor,
            self.info.micro,
            _prerelease_key(self.info.prerelease),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KubeVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "KubeVersion") -> bool:
        if not isinstance(other, KubeVersion):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return self._version

    def __repr__(self) -> str:
        return f"KubeVersion({self._version!r})"
