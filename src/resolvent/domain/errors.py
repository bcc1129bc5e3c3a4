from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..resolution.incompatibility import Incompatibility


class ResolventError(Exception):
    """base class for exceptions in resolvent."""
    pass


class RequirementError(ResolventError):
    """raised when a requirement string cannot be parsed."""
    def __init__(self, requirement: str, reason: str):
        self.requirement = requirement
        self.reason = reason
        super().__init__(f"Invalid requirement '{requirement}': {reason}")


class MarkerSyntaxError(ResolventError):
    """raised when a marker expression cannot be parsed."""
    def __init__(self, marker: str, reason: str):
        self.marker = marker
        self.reason = reason
        super().__init__(f"Invalid marker '{marker}': {reason}")


class MetadataUnavailable(ResolventError):
    """raised by registry clients once their own retries are exhausted."""
    def __init__(self, package_name: str, version: Optional[str] = None, reason: str = ""):
        self.package_name = package_name
        self.version = version
        self.reason = reason
        target = f"{package_name}=={version}" if version else package_name
        message = f"Metadata for {target} is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InternalInvariantViolation(ResolventError):
    """raised when solver state breaks one of its own invariants. never recovered."""
    pass


class ResolutionCancelled(ResolventError):
    """raised at the next decision point after cancellation was requested."""
    def __init__(self):
        super().__init__("Resolution was cancelled")


class UnsatisfiableError(ResolventError):
    """raised when the root requirements cannot be satisfied together."""
    def __init__(self, incompatibility: "Incompatibility", fork_marker: Optional[str] = None):
        self.incompatibility = incompatibility
        self.fork_marker = fork_marker
        super().__init__(self.report())

    @property
    def trace(self) -> List["Incompatibility"]:
        """the causally-linked incompatibilities, leaves first."""
        from ..resolution.report import collect_trace
        return collect_trace(self.incompatibility)

    def report(self) -> str:
        from ..resolution.report import FailureReporter
        text = FailureReporter(self.incompatibility).report()
        if self.fork_marker:
            text = f"Resolution failed for the split `{self.fork_marker}`:\n{text}"
        return text


class NoUsableArtifact:
    """
    a chosen version with no installable artifact for the target environment.

    reported alongside a successful resolution rather than raised: a later
    install step is where it actually fails.
    """
    def __init__(self, package_name: str, version: str, reason: str, fork_marker: Optional[str] = None):
        self.package_name = package_name
        self.version = version
        self.reason = reason
        self.fork_marker = fork_marker

    def __str__(self) -> str:
        where = f" (for `{self.fork_marker}`)" if self.fork_marker else ""
        return f"{self.package_name}=={self.version} has no usable artifact{where}: {self.reason}"

    def __repr__(self) -> str:
        return f"NoUsableArtifact({self.package_name!r}, {self.version!r}, {self.reason!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NoUsableArtifact):
            return NotImplemented
        return (self.package_name, self.version, self.reason, self.fork_marker) == (
            other.package_name, other.version, other.reason, other.fork_marker
        )

    def __hash__(self) -> int:
        return hash((self.package_name, self.version, self.reason, self.fork_marker))
