"""Bootstrap a library, a linked logic contract and its upgradeable proxy."""
from __future__ import annotations

from .artifacts import Artifact, ArtifactResolver, LinkReference
from .config import DeployConfig, load_config
from .deploy import deploy, deploy_from_config
from .errors import (
    AlreadyInitialized,
    ArgumentMismatch,
    ArtifactNotFound,
    ConfirmationTimeout,
    DependencyUnsatisfied,
    DeploymentCancelled,
    DeploymentError,
    InitializerNotFound,
    NetworkUnavailable,
    StepFailed,
    TransactionRejected,
    UnresolvedLibraryReference,
)
from .initializer import InitCall, InitializationGuard, InitPayload, select_initializer
from .ledger import Ledger, Receipt, Web3Ledger
from .linker import link
from .manifest import DeploymentManifest, format_summary
from .orchestrator import DeploymentRecord, Orchestrator, StepStatus
from .plan import (
    DeployLibrary,
    DeploymentPlan,
    DeployProxy,
    InitializationStrategy,
    InvokeInitializer,
    LinkAndDeployContract,
    build_plan,
)

__all__ = [
    "AlreadyInitialized",
    "ArgumentMismatch",
    "Artifact",
    "ArtifactNotFound",
    "ArtifactResolver",
    "ConfirmationTimeout",
    "DependencyUnsatisfied",
    "DeployConfig",
    "DeployLibrary",
    "DeployProxy",
    "DeploymentCancelled",
    "DeploymentError",
    "DeploymentManifest",
    "DeploymentPlan",
    "DeploymentRecord",
    "InitCall",
    "InitPayload",
    "InitializationGuard",
    "InitializationStrategy",
    "InitializerNotFound",
    "InvokeInitializer",
    "Ledger",
    "LinkAndDeployContract",
    "LinkReference",
    "NetworkUnavailable",
    "Orchestrator",
    "Receipt",
    "StepFailed",
    "StepStatus",
    "TransactionRejected",
    "UnresolvedLibraryReference",
    "Web3Ledger",
    "build_plan",
    "deploy",
    "deploy_from_config",
    "format_summary",
    "link",
    "load_config",
    "select_initializer",
]
