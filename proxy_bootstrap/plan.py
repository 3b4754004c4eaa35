"""Deployment plans: an explicit, checkable ordering of publish steps."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple, Union

from .errors import DependencyUnsatisfied
from .initializer import InitCall


class InitializationStrategy(str, enum.Enum):
    """How the logic contract's initializer is run."""

    NONE = "none"
    DIRECT = "direct"
    RELAYED = "relayed"


@dataclass(frozen=True)
class DeployLibrary:
    artifact: str
    name: Optional[str] = None
    constructor_args: Tuple[Any, ...] = ()

    @property
    def role(self) -> str:
        return self.name or self.artifact

    def requires(self) -> FrozenSet[str]:
        return frozenset()


@dataclass(frozen=True)
class LinkAndDeployContract:
    """Link ``artifact`` against earlier libraries and publish it.

    ``libraries`` maps a library name (as it appears in the bytecode) to the
    role whose address should be linked in. Libraries the artifact references
    but the mapping omits are looked up under their own name.
    """

    artifact: str
    libraries: Mapping[str, str] = field(default_factory=dict)
    name: Optional[str] = None
    constructor_args: Tuple[Any, ...] = ()

    @property
    def role(self) -> str:
        return self.name or self.artifact

    def requires(self) -> FrozenSet[str]:
        return frozenset(self.libraries.values())


@dataclass(frozen=True)
class DeployProxy:
    """Publish a proxy for the contract deployed under ``logic``.

    When ``init`` is set the proxy constructor relays the initializer call.
    ``extra_args`` sit between the logic address and the init data, for
    proxies such as ``TransparentUpgradeableProxy(logic, admin, data)``.
    """

    artifact: str
    logic: str
    name: Optional[str] = None
    init: Optional[InitCall] = None
    extra_args: Tuple[Any, ...] = ()

    @property
    def role(self) -> str:
        return self.name or self.artifact

    def requires(self) -> FrozenSet[str]:
        return frozenset({self.logic})


@dataclass(frozen=True)
class InvokeInitializer:
    """Call the initializer on ``target`` after it has been deployed.

    ``interface`` names the role whose artifact declares the initializer;
    it defaults to ``target`` itself.
    """

    target: str
    init: InitCall = field(default_factory=InitCall)
    interface: Optional[str] = None

    @property
    def role(self) -> str:
        return f"{self.target}.{self.init.function.split('(', 1)[0]}"

    @property
    def abi_role(self) -> str:
        return self.interface or self.target

    def requires(self) -> FrozenSet[str]:
        return frozenset({self.target, self.abi_role})


Step = Union[DeployLibrary, LinkAndDeployContract, DeployProxy, InvokeInitializer]
DEPLOY_STEPS = (DeployLibrary, LinkAndDeployContract, DeployProxy)


def describe(step: Step) -> str:
    return f"{type(step).__name__}({step.role})"


@dataclass(frozen=True)
class DeploymentPlan:
    steps: Tuple[Step, ...]

    def __post_init__(self) -> None:
        seen = set()
        for step in self.steps:
            if step.role in seen:
                raise ValueError(f"Role {step.role!r} appears more than once in the plan")
            seen.add(step.role)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def validate(self) -> None:
        """Check, without touching the network, that every step's inputs come first.

        Raises:
            DependencyUnsatisfied: For the first step whose dependencies are
                produced later in the plan, or never.
        """

        produced = set()
        for step in self.steps:
            missing = tuple(sorted(step.requires() - produced))
            if missing:
                raise DependencyUnsatisfied(describe(step), missing)
            if isinstance(step, DEPLOY_STEPS):
                produced.add(step.role)


def build_plan(
    strategy: InitializationStrategy | str = InitializationStrategy.RELAYED,
    *,
    library: str = "IterableOrderedOrderSet",
    logic: str = "NFTAuction",
    proxy: str = "Proxy",
    initializer: InitCall | None = None,
    proxy_args: Iterable[Any] = (),
    logic_args: Iterable[Any] = (),
) -> DeploymentPlan:
    """The library -> logic -> proxy plan for one initialization strategy."""

    strategy = InitializationStrategy(strategy)
    init = initializer or InitCall()
    steps: list[Step] = [
        DeployLibrary(library),
        LinkAndDeployContract(logic, libraries={library: library}, constructor_args=tuple(logic_args)),
    ]
    if strategy is InitializationStrategy.DIRECT:
        steps.append(InvokeInitializer(target=logic, init=init))
    steps.append(
        DeployProxy(
            proxy,
            logic=logic,
            init=init if strategy is InitializationStrategy.RELAYED else None,
            extra_args=tuple(proxy_args),
        )
    )
    return DeploymentPlan(tuple(steps))


__all__ = [
    "DEPLOY_STEPS",
    "DeployLibrary",
    "DeployProxy",
    "DeploymentPlan",
    "InitializationStrategy",
    "InvokeInitializer",
    "LinkAndDeployContract",
    "Step",
    "build_plan",
    "describe",
]
