"""Execute a :class:`DeploymentPlan` step by step against a ledger."""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .artifacts import Artifact, ArtifactResolver, LinkReference
from .errors import (
    ArgumentMismatch,
    DependencyUnsatisfied,
    DeploymentCancelled,
    DeploymentError,
    InitializerNotFound,
    StepFailed,
    UnresolvedLibraryReference,
)
from .initializer import InitializationGuard, InitPayload, select_initializer
from .ledger import Ledger, Receipt
from .linker import link, unlinked_libraries
from .plan import (
    DEPLOY_STEPS,
    DeploymentPlan,
    DeployProxy,
    InvokeInitializer,
    LinkAndDeployContract,
    Step,
    describe,
)

_LOGGER = logging.getLogger(__name__)


class StepStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class DeployedInstance:
    role: str
    artifact: str
    address: str
    tx_hash: str
    block_number: int
    constructor_args: Tuple[Any, ...] = ()


@dataclass
class StepOutcome:
    step: Step
    status: StepStatus = StepStatus.NOT_ATTEMPTED
    receipt: Optional[Receipt] = None
    instance: Optional[DeployedInstance] = None
    error: Optional[str] = None


@dataclass
class DeploymentRecord:
    """Everything one run produced, including where it stopped."""

    plan: DeploymentPlan
    outcomes: List[StepOutcome] = field(default_factory=list)
    initialized: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_plan(cls, plan: DeploymentPlan) -> "DeploymentRecord":
        return cls(plan=plan, outcomes=[StepOutcome(step=step) for step in plan])

    @property
    def instances(self) -> Dict[str, DeployedInstance]:
        return {
            outcome.instance.role: outcome.instance
            for outcome in self.outcomes
            if outcome.status is StepStatus.CONFIRMED and outcome.instance is not None
        }

    @property
    def addresses(self) -> Dict[str, str]:
        return {role: instance.address for role, instance in self.instances.items()}

    @property
    def complete(self) -> bool:
        return all(outcome.status is StepStatus.CONFIRMED for outcome in self.outcomes)

    def instance(self, role: str) -> DeployedInstance:
        try:
            return self.instances[role]
        except KeyError:
            raise DependencyUnsatisfied(role, (role,)) from None


class Orchestrator:
    """Runs plans sequentially; each step waits for its confirmation.

    Every artifact is resolved, every initializer payload encoded and every
    constructor arity checked before the first submission. Runs are not
    idempotent: every call to :meth:`run` deploys fresh instances. Confirmed
    steps are never rolled back when a later one fails.
    """

    def __init__(
        self,
        ledger: Ledger,
        resolver: ArtifactResolver,
        *,
        guard: InitializationGuard | None = None,
    ) -> None:
        self.ledger = ledger
        self.resolver = resolver
        self.guard = guard or InitializationGuard()

    def run(self, plan: DeploymentPlan, *, cancel: threading.Event | None = None) -> DeploymentRecord:
        """Execute ``plan`` in order and return the run record.

        Raises:
            DeploymentError: Any step failure. The partial record is attached
                as ``error.record``; later steps are left ``not_attempted``.
                Errors outside the deployment taxonomy arrive wrapped in
                :class:`StepFailed`.
        """

        record = DeploymentRecord.for_plan(plan)
        payloads = self._preflight(record)

        for outcome in record.outcomes:
            step = outcome.step
            if cancel is not None and cancel.is_set():
                error = DeploymentCancelled(f"Run cancelled before {describe(step)}")
                error.record = record
                _LOGGER.warning("%s", error)
                raise error
            try:
                missing = tuple(sorted(step.requires() - set(record.addresses)))
                if missing:
                    raise DependencyUnsatisfied(describe(step), missing)
                self._execute(step, outcome, record, payloads.get(step.role))
            except Exception as exc:
                error = self._fail(outcome, record, exc)
                if error is exc:
                    raise
                raise error from exc
        return record

    def _fail(self, outcome: StepOutcome, record: DeploymentRecord, exc: Exception) -> DeploymentError:
        outcome.status = StepStatus.FAILED
        outcome.error = str(exc)
        error = exc if isinstance(exc, DeploymentError) else StepFailed(describe(outcome.step), exc)
        error.record = record
        _LOGGER.warning("Deployment aborted at %s: %s", describe(outcome.step), error)
        return error

    def _preflight(self, record: DeploymentRecord) -> Dict[str, InitPayload]:
        """Check every step against its artifacts without touching the ledger."""

        artifacts = {step.role: step.artifact for step in record.plan if isinstance(step, DEPLOY_STEPS)}
        payloads: Dict[str, InitPayload] = {}
        for outcome in record.outcomes:
            try:
                payload = self._prepare(outcome.step, artifacts)
            except Exception as exc:
                error = self._fail(outcome, record, exc)
                if error is exc:
                    raise
                raise error from exc
            if payload is not None:
                payloads[outcome.step.role] = payload
        return payloads

    def _prepare(self, step: Step, artifacts: Mapping[str, str]) -> Optional[InitPayload]:
        def artifact_for(role: str) -> Artifact:
            if role not in artifacts:
                raise DependencyUnsatisfied(describe(step), (role,))
            return self.resolver.resolve(artifacts[role])

        if isinstance(step, InvokeInitializer):
            artifact_for(step.target)
            return select_initializer(artifact_for(step.abi_role), step.init.function, step.init.args)

        artifact = self.resolver.resolve(step.artifact)
        for reference in artifact.link_references:
            if _library_role(step, reference) not in artifacts:
                raise UnresolvedLibraryReference(artifact.name, reference.library)

        if not isinstance(step, DeployProxy):
            _check_arity(artifact, len(step.constructor_args))
            return None
        payload = None
        if step.init is not None:
            payload = select_initializer(artifact_for(step.logic), step.init.function, step.init.args)
        else:
            artifact_for(step.logic)
        _proxy_takes_data(artifact, len(step.extra_args), payload)
        return payload

    def _execute(
        self,
        step: Step,
        outcome: StepOutcome,
        record: DeploymentRecord,
        payload: Optional[InitPayload],
    ) -> None:
        if isinstance(step, InvokeInitializer):
            self._initialize(step, outcome, record, payload)
            return

        artifact = self.resolver.resolve(step.artifact)
        bytecode = link(artifact, self._library_addresses(step, artifact, record))
        leftover = unlinked_libraries(bytecode)
        if leftover:
            raise UnresolvedLibraryReference(artifact.name, leftover[0])

        if isinstance(step, DeployProxy):
            args: List[Any] = [record.instance(step.logic).address, *step.extra_args]
            if _proxy_takes_data(artifact, len(step.extra_args), payload):
                args.append(payload.data if payload is not None else b"")
            constructor_args = tuple(args)
        else:
            constructor_args = tuple(step.constructor_args)

        _LOGGER.info("Deploying %s as %s", artifact.name, step.role)
        receipt = self.ledger.publish(bytecode, constructor_args, artifact.abi)
        if receipt.contract_address is None:
            raise DeploymentError(f"{describe(step)} confirmed without a contract address")

        outcome.receipt = receipt
        outcome.instance = DeployedInstance(
            role=step.role,
            artifact=artifact.name,
            address=receipt.contract_address,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            constructor_args=constructor_args,
        )
        outcome.status = StepStatus.CONFIRMED
        _LOGGER.info("%s confirmed at %s (block %s)", step.role, receipt.contract_address, receipt.block_number)

        if payload is not None:
            self.guard.mark_relayed(receipt.contract_address)
            record.initialized[step.role] = receipt.tx_hash

    @staticmethod
    def _library_addresses(step: Step, artifact: Artifact, record: DeploymentRecord) -> Dict[str, str]:
        addresses = record.addresses
        resolved: Dict[str, str] = {}
        for reference in artifact.link_references:
            role = _library_role(step, reference)
            if role in addresses:
                resolved[reference.library] = addresses[role]
        return resolved

    def _initialize(
        self,
        step: InvokeInitializer,
        outcome: StepOutcome,
        record: DeploymentRecord,
        payload: Optional[InitPayload],
    ) -> None:
        target = record.instance(step.target)
        if payload is None:
            interface = self.resolver.resolve(record.instance(step.abi_role).artifact)
            payload = select_initializer(interface, step.init.function, step.init.args)
        receipt = self.guard.guarded_invoke(self.ledger, target.address, payload)
        outcome.receipt = receipt
        outcome.status = StepStatus.CONFIRMED
        record.initialized[step.target] = receipt.tx_hash


def _library_role(step: Step, reference: LinkReference) -> str:
    """Role whose address fills ``reference``; defaults to the library's own name."""

    mapping: Mapping[str, str] = step.libraries if isinstance(step, LinkAndDeployContract) else {}
    role = mapping.get(reference.library)
    if role is None:
        role = next((r for name, r in mapping.items() if reference.matches(name)), reference.library)
    return role


def _constructor_inputs(artifact: Artifact) -> List[Mapping[str, Any]]:
    constructor = artifact.constructor()
    return list(constructor.get("inputs", ())) if constructor else []


def _check_arity(artifact: Artifact, count: int) -> None:
    expected = len(_constructor_inputs(artifact))
    if expected != count:
        raise ArgumentMismatch(f"{artifact.name} constructor takes {expected} argument(s), got {count}")


def _proxy_takes_data(artifact: Artifact, extra_count: int, payload: Optional[InitPayload]) -> bool:
    """Whether the proxy constructor ends with a ``bytes`` init data slot.

    The constructor is ``(logic, *extra_args[, bytes data])``.
    """

    inputs = _constructor_inputs(artifact)
    positional = 1 + extra_count
    takes_data = len(inputs) == positional + 1 and inputs[-1].get("type") == "bytes"
    if payload is not None and not takes_data:
        raise InitializerNotFound(f"{artifact.name} constructor takes no init data to relay {payload.signature}")
    _check_arity(artifact, positional + int(takes_data))
    return takes_data


__all__ = [
    "DeployedInstance",
    "DeploymentRecord",
    "Orchestrator",
    "StepOutcome",
    "StepStatus",
]
