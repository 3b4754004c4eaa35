"""Error taxonomy raised while bootstrapping a proxy deployment."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .manifest import DeploymentManifest
    from .orchestrator import DeploymentRecord


class DeploymentError(RuntimeError):
    """Base class for every failure that aborts a deployment run.

    ``record`` is the partial :class:`~proxy_bootstrap.orchestrator.DeploymentRecord`
    of the run that raised, and ``manifest`` the manifest built from it. Both
    stay ``None`` when the error happens outside of a run.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.record: Optional["DeploymentRecord"] = None
        self.manifest: Optional["DeploymentManifest"] = None


class ArtifactNotFound(DeploymentError):
    """Raised when no compiled descriptor matches the requested name."""

    def __init__(self, name: str, detail: str | None = None) -> None:
        message = f"Artifact {name!r} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.name = name


class UnresolvedLibraryReference(DeploymentError):
    """Raised when bytecode references a library with no known address."""

    def __init__(self, artifact: str, library: str) -> None:
        super().__init__(f"{artifact} links {library} but no address was supplied for it")
        self.artifact = artifact
        self.library = library


class DependencyUnsatisfied(DeploymentError):
    """Raised when a step consumes a role that no earlier step produced."""

    def __init__(self, step: str, missing: tuple[str, ...]) -> None:
        super().__init__(f"Step {step} requires {', '.join(missing)} which has not been deployed yet")
        self.step = step
        self.missing = missing


class InitializerNotFound(DeploymentError):
    """Raised when an artifact exposes no matching initializer entry point."""


class ArgumentMismatch(DeploymentError):
    """Raised before submission when arguments do not fit a constructor or initializer."""


class AlreadyInitialized(DeploymentError):
    """Raised when an initializer would run a second time on the same target."""

    def __init__(self, target: str, detail: str | None = None) -> None:
        message = f"{target} is already initialized"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.target = target


class TransactionRejected(DeploymentError):
    """Raised when the network refuses or reverts a submitted transaction."""

    def __init__(self, reason: str, data: Any = None, tx_hash: str | None = None) -> None:
        super().__init__(f"Transaction rejected: {reason}")
        self.reason = reason
        self.data = data
        self.tx_hash = tx_hash


class ConfirmationTimeout(DeploymentError):
    """Raised when a broadcast transaction is not confirmed in time."""

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(f"Transaction {tx_hash} not confirmed within {timeout:g}s")
        self.tx_hash = tx_hash
        self.timeout = timeout


class NetworkUnavailable(DeploymentError):
    """Raised when the RPC endpoint cannot be reached. Usually worth retrying."""


class DeploymentCancelled(DeploymentError):
    """Raised when the caller aborts a run between two steps."""


class StepFailed(DeploymentError):
    """Wraps an unexpected error raised while a step was prepared or executed."""

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"{step} failed: {cause.__class__.__name__}: {cause}")
        self.step = step


__all__ = [
    "AlreadyInitialized",
    "ArgumentMismatch",
    "ArtifactNotFound",
    "ConfirmationTimeout",
    "DependencyUnsatisfied",
    "DeploymentCancelled",
    "DeploymentError",
    "InitializerNotFound",
    "NetworkUnavailable",
    "StepFailed",
    "TransactionRejected",
    "UnresolvedLibraryReference",
]
