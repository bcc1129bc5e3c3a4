"""
version ranges as normalized unions of intervals.

a range is a sorted tuple of disjoint, non-adjacent segments. each segment is
a (lower, upper) pair where a bound is either None (unbounded) or a
(version, inclusive) tuple. every constructor normalizes, so two ranges that
contain the same versions always compare equal.

PEP 440 gives `==1.0` every local version of 1.0 and keeps `>1.0` away from
its post-releases. such ranges end at a ceiling: a bound that sorts after a
whole family of versions and never equals a real one.
"""
from typing import Iterable, Optional, Tuple, Union

from packaging.specifiers import Specifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from ..domain.errors import InternalInvariantViolation

Bound = Optional[Tuple[Version, bool]]
Segment = Tuple[Bound, Bound]
VersionLike = Union[str, Version]

_PRE_RANKS = {"a": 0, "b": 1, "rc": 2}
_TOP = (2,)


def _public_key(version: Version) -> tuple:
    """PEP 440 ordering of everything but the local label."""
    release = list(version.release)
    while release and release[-1] == 0:
        release.pop()

    if version.pre is None and version.post is None and version.dev is not None:
        # 1.0.dev0 sorts before 1.0a1
        pre = (0,)
    elif version.pre is None:
        pre = (3,)
    else:
        pre = (1, _PRE_RANKS[version.pre[0]], version.pre[1])
    post = (0,) if version.post is None else (1, version.post)
    dev = (1,) if version.dev is None else (0, version.dev)
    return version.epoch, tuple(release), pre, post, dev


def _local_key(version: Version) -> tuple:
    if version.local is None:
        return (0,)
    parts = []
    for part in version.local.split("."):
        parts.append((1, int(part), "") if part.isdigit() else (0, 0, part))
    return 1, tuple(parts)


def _order_key(version: Version) -> tuple:
    if isinstance(version, _Ceiling):
        return version.ceiling_key
    return _public_key(version) + (_local_key(version),)


class _Ceiling(Version):
    """
    sorts right after every local version of `base`, or with
    `post_releases` after every post-release of it as well.
    """

    def __init__(self, base: Version, post_releases: bool = False):
        super().__init__(str(base))
        self.base = base
        self.post_releases = post_releases
        if post_releases:
            epoch, release, pre, _, _ = _public_key(base)
            self.ceiling_key = (epoch, release, pre, _TOP, _TOP, _TOP)
        else:
            self.ceiling_key = _public_key(base) + (_TOP,)

    def __hash__(self) -> int:
        return hash(self.ceiling_key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.ceiling_key == _order_key(other)

    def __ne__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.ceiling_key != _order_key(other)

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.ceiling_key < _order_key(other)

    def __le__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.ceiling_key <= _order_key(other)

    def __gt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.ceiling_key > _order_key(other)

    def __ge__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.ceiling_key >= _order_key(other)

    def __repr__(self) -> str:
        family = "post-releases" if self.post_releases else "local versions"
        return f"<Ceiling after the {family} of {self.base}>"


def _spans_locals(lower: Bound, upper: Bound) -> bool:
    """whether the segment is exactly one version plus its local versions."""
    if lower is None or upper is None or not lower[1]:
        return False
    ceiling = upper[0]
    return isinstance(ceiling, _Ceiling) and not ceiling.post_releases and ceiling.base == lower[0]


def _coerce(version: VersionLike) -> Version:
    if isinstance(version, Version):
        return version
    return Version(version)


def _lower_key(bound: Bound) -> tuple:
    if bound is None:
        return (0,)
    version, inclusive = bound
    return (1, version, 0 if inclusive else 1)


def _upper_key(bound: Bound) -> tuple:
    if bound is None:
        return (2,)
    version, inclusive = bound
    return (1, version, 1 if inclusive else 0)


def _is_valid_segment(lower: Bound, upper: Bound) -> bool:
    if lower is None or upper is None:
        return True
    if lower[0] < upper[0]:
        return True
    return lower[0] == upper[0] and lower[1] and upper[1]


def _touches(upper: Bound, lower: Bound) -> bool:
    """whether a segment ending at `upper` overlaps or abuts the next one starting at `lower`."""
    if upper is None or lower is None:
        return True
    if lower[0] < upper[0]:
        return True
    return lower[0] == upper[0] and (lower[1] or upper[1])


def _normalize(segments: Iterable[Segment]) -> Tuple[Segment, ...]:
    valid = [s for s in segments if _is_valid_segment(*s)]
    valid.sort(key=lambda s: (_lower_key(s[0]), _upper_key(s[1])))

    merged = []
    for lower, upper in valid:
        if merged and _touches(merged[-1][1], lower):
            prev_lower, prev_upper = merged[-1]
            if _upper_key(upper) > _upper_key(prev_upper):
                merged[-1] = (prev_lower, upper)
        else:
            merged.append((lower, upper))
    return tuple(merged)


def _check_invariants(segments: Tuple[Segment, ...]) -> None:
    for index, (lower, upper) in enumerate(segments):
        if not _is_valid_segment(lower, upper):
            raise InternalInvariantViolation(f"empty segment in normalized range: {segments!r}")
        if index and _touches(segments[index - 1][1], lower):
            raise InternalInvariantViolation(f"overlapping segments in normalized range: {segments!r}")


def _release_string(epoch: int, release: Tuple[int, ...]) -> str:
    text = ".".join(str(part) for part in release)
    return f"{epoch}!{text}" if epoch else text


def _prefix_bounds(prefix: Version) -> Tuple[Version, Version]:
    """the [lowest, next) versions matched by a `prefix.*` wildcard."""
    release = prefix.release
    bumped = release[:-1] + (release[-1] + 1,)
    lower = Version(_release_string(prefix.epoch, release) + ".dev0")
    upper = Version(_release_string(prefix.epoch, bumped) + ".dev0")
    return lower, upper


def _format_bound(bound: Tuple[Version, bool], lower: bool) -> str:
    version, inclusive = bound
    if lower:
        return f">={version}" if inclusive else f">{version}"
    return f"<={version}" if inclusive else f"<{version}"


class VersionRange:
    """an immutable set of versions expressed as disjoint intervals."""

    __slots__ = ("_segments",)

    def __init__(self, segments: Iterable[Segment] = ()):
        self._segments = _normalize(segments)
        _check_invariants(self._segments)

    # constructors

    @classmethod
    def empty(cls) -> "VersionRange":
        return cls()

    @classmethod
    def full(cls) -> "VersionRange":
        return cls([(None, None)])

    @classmethod
    def singleton(cls, version: VersionLike) -> "VersionRange":
        v = _coerce(version)
        return cls([((v, True), (v, True))])

    @classmethod
    def higher_than(cls, version: VersionLike) -> "VersionRange":
        return cls([((_coerce(version), True), None)])

    @classmethod
    def strictly_higher_than(cls, version: VersionLike) -> "VersionRange":
        return cls([((_coerce(version), False), None)])

    @classmethod
    def lower_than(cls, version: VersionLike) -> "VersionRange":
        return cls([(None, (_coerce(version), True))])

    @classmethod
    def strictly_lower_than(cls, version: VersionLike) -> "VersionRange":
        return cls([(None, (_coerce(version), False))])

    @classmethod
    def between(cls, lower: VersionLike, upper: VersionLike) -> "VersionRange":
        """the half-open interval [lower, upper)."""
        return cls([((_coerce(lower), True), (_coerce(upper), False))])

    @classmethod
    def from_versions(cls, versions: Iterable[VersionLike]) -> "VersionRange":
        segments = []
        for version in versions:
            v = _coerce(version)
            segments.append(((v, True), (v, True)))
        return cls(segments)

    @classmethod
    def from_operator(cls, operator: str, version: VersionLike) -> "VersionRange":
        """
        a range from a plain comparison, without PEP 440 pre-release rules.

        used for marker variables, where `python_full_version < '3.10'` means
        exactly that.
        """
        v = _coerce(version)
        if operator == "==":
            return cls.singleton(v)
        if operator == "!=":
            return cls.singleton(v).complement()
        if operator == ">=":
            return cls.higher_than(v)
        if operator == ">":
            return cls.strictly_higher_than(v)
        if operator == "<=":
            return cls.lower_than(v)
        if operator == "<":
            return cls.strictly_lower_than(v)
        raise ValueError(f"Unsupported comparison operator: {operator}")

    @classmethod
    def from_specifier(cls, specifier: Union[str, Specifier, SpecifierSet]) -> "VersionRange":
        """convert a PEP 440 specifier (set) into a range."""
        if isinstance(specifier, str):
            specifier = SpecifierSet(specifier)
        if isinstance(specifier, Specifier):
            return cls._from_single_specifier(specifier)

        result = cls.full()
        for single in specifier:
            result = result.intersection(cls._from_single_specifier(single))
        return result

    @classmethod
    def from_release_specifier(cls, specifier: Union[str, SpecifierSet]) -> "VersionRange":
        """
        convert a specifier set meant for release-only versions.

        requires-python is compared against python versions such as 3.12.1,
        so comparisons are taken literally: `<3.13` is not widened to keep
        out 3.13 pre-releases and `>3.8` does not skip local labels.
        """
        if isinstance(specifier, str):
            specifier = SpecifierSet(specifier)

        result = cls.full()
        for single in specifier:
            if single.operator in ("~=", "===") or single.version.endswith(".*"):
                piece = cls._from_single_specifier(single)
            else:
                piece = cls.from_operator(single.operator, single.version)
            result = result.intersection(piece)
        return result

    @classmethod
    def _from_single_specifier(cls, specifier: Specifier) -> "VersionRange":
        operator = specifier.operator
        text = specifier.version

        if operator == "===":
            try:
                return cls.singleton(Version(text))
            except InvalidVersion:
                return cls.empty()

        if text.endswith(".*"):
            lower, upper = _prefix_bounds(Version(text[:-2]))
            matched = cls.between(lower, upper)
            return matched if operator == "==" else matched.complement()

        version = Version(text)
        if operator == "~=":
            lower, upper = _prefix_bounds(Version(_release_string(version.epoch, version.release[:-1])))
            return cls.higher_than(version).intersection(cls.between(lower, upper))
        if operator in ("==", "!="):
            # without a local label of its own, `==V` matches every `V+local`
            if version.local:
                matched = cls.singleton(version)
            else:
                matched = cls([((version, True), (_Ceiling(version), False))])
            return matched if operator == "==" else matched.complement()
        if operator == "<=":
            return cls.lower_than(version if version.local else _Ceiling(version))
        if operator == ">":
            # `>V` admits neither local versions of V nor, unless V is one, its post-releases
            if version.is_postrelease or version.is_devrelease:
                return cls.strictly_higher_than(_Ceiling(version))
            return cls.strictly_higher_than(_Ceiling(version, post_releases=True))
        if operator == "<":
            # `<V` does not admit pre-releases of V itself
            if version.is_prerelease:
                return cls.strictly_lower_than(version)
            return cls.strictly_lower_than(Version(f"{version.public}.dev0"))
        return cls.from_operator(operator, version)

    # queries

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return self._segments

    def is_empty(self) -> bool:
        return not self._segments

    def is_full(self) -> bool:
        return self._segments == ((None, None),)

    def contains(self, version: VersionLike) -> bool:
        v = _coerce(version)
        for lower, upper in self._segments:
            if lower is not None and (v < lower[0] or (v == lower[0] and not lower[1])):
                # segments are sorted; nothing later can contain v either
                return False
            if upper is None or v < upper[0] or (v == upper[0] and upper[1]):
                return True
        return False

    def __contains__(self, version: VersionLike) -> bool:
        return self.contains(version)

    def as_singleton(self) -> Optional[Version]:
        if len(self._segments) != 1:
            return None
        lower, upper = self._segments[0]
        if lower is not None and upper is not None and (lower == upper or _spans_locals(lower, upper)):
            return lower[0]
        return None

    def lower_bound(self) -> Bound:
        """the lower bound of the lowest segment (None when unbounded or empty)."""
        if not self._segments:
            return None
        return self._segments[0][0]

    def upper_bound(self) -> Bound:
        if not self._segments:
            return None
        return self._segments[-1][1]

    # set operations

    def complement(self) -> "VersionRange":
        if not self._segments:
            return VersionRange.full()

        result = []
        gap_lower: Bound = None
        for lower, upper in self._segments:
            if lower is not None:
                result.append((gap_lower, (lower[0], not lower[1])))
            if upper is None:
                return VersionRange(result)
            gap_lower = (upper[0], not upper[1])
        result.append((gap_lower, None))
        return VersionRange(result)

    def intersection(self, other: "VersionRange") -> "VersionRange":
        result = []
        for l1, u1 in self._segments:
            for l2, u2 in other._segments:
                lower = l1 if _lower_key(l1) >= _lower_key(l2) else l2
                upper = u1 if _upper_key(u1) <= _upper_key(u2) else u2
                if _is_valid_segment(lower, upper):
                    result.append((lower, upper))
        return VersionRange(result)

    def union(self, other: "VersionRange") -> "VersionRange":
        return VersionRange(self._segments + other._segments)

    def difference(self, other: "VersionRange") -> "VersionRange":
        return self.intersection(other.complement())

    def subset_of(self, other: "VersionRange") -> bool:
        return self.intersection(other) == self

    def is_disjoint(self, other: "VersionRange") -> bool:
        return self.intersection(other).is_empty()

    # dunder

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionRange):
            return NotImplemented
        return self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __repr__(self) -> str:
        return f"VersionRange({str(self)!r})"

    def __str__(self) -> str:
        if not self._segments:
            return "∅"
        if self.is_full():
            return "*"

        # the complement of a single version reads better as `!=`
        if len(self._segments) == 2:
            (l1, u1), (l2, u2) = self._segments
            if l1 is None and u2 is None and u1 is not None and l2 is not None:
                if u1[0] == l2[0] and not u1[1] and not l2[1]:
                    return f"!={u1[0]}"
                if not u1[1] and _spans_locals((u1[0], True), l2):
                    return f"!={u1[0]}"

        parts = []
        for lower, upper in self._segments:
            if lower is not None and (lower == upper or _spans_locals(lower, upper)):
                parts.append(f"=={lower[0]}")
            elif lower is None:
                parts.append(_format_bound(upper, lower=False))
            elif upper is None:
                parts.append(_format_bound(lower, lower=True))
            else:
                parts.append(f"{_format_bound(lower, lower=True)}, {_format_bound(upper, lower=False)}")
        return " | ".join(parts)


def intersect(a: VersionRange, b: VersionRange) -> VersionRange:
    return a.intersection(b)


def union(a: VersionRange, b: VersionRange) -> VersionRange:
    return a.union(b)


def complement(a: VersionRange) -> VersionRange:
    return a.complement()


def is_empty(r: VersionRange) -> bool:
    return r.is_empty()


def contains(r: VersionRange, version: VersionLike) -> bool:
    return r.contains(version)
