import logging
from typing import FrozenSet, Iterable, Optional

from packaging.tags import Tag, parse_tag, sys_tags
from packaging.utils import InvalidWheelFilename, parse_wheel_filename

from ..domain.errors import NoUsableArtifact
from ..domain.models import VersionInfo

logger = logging.getLogger(__name__)


def target_tags(tags: Optional[Iterable[str]] = None) -> FrozenSet[Tag]:
    """expand compressed tag strings (`cp312-cp312-manylinux_2_17_x86_64`); None means this interpreter."""
    if tags is None:
        return frozenset(sys_tags())
    result = set()
    for tag in tags:
        result.update(parse_tag(tag))
    return frozenset(result)


def compatible_wheels(info: VersionInfo, tags: FrozenSet[Tag]) -> list:
    wheels = []
    for filename in info.wheels:
        try:
            _, _, _, wheel_tags = parse_wheel_filename(filename)
        except InvalidWheelFilename as e:
            logger.debug(f"skipping wheel {filename}: {e}")
            continue
        if wheel_tags & tags:
            wheels.append(filename)
    return wheels


def check_artifacts(
    name: str, info: VersionInfo, tags: FrozenSet[Tag], fork_marker: Optional[str] = None
) -> Optional[NoUsableArtifact]:
    """
    a warning when the release can be neither built nor installed from a wheel.

    never excludes the version; the lock stays valid and the install step
    reports the problem for the environments it affects.
    """
    if info.sdist:
        return None
    if compatible_wheels(info, tags):
        return None

    if not info.wheels:
        reason = "no wheels or source distribution are published"
    else:
        reason = f"none of its {len(info.wheels)} wheels match the target tags and no source distribution is published"
    logger.debug(f"{name}=={info.version}: {reason}")
    return NoUsableArtifact(name, info.version, reason, fork_marker)
