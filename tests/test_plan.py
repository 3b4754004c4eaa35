from __future__ import annotations

import itertools

import pytest

from fakes import LIBRARY, LOGIC, PROXY, FakeLedger
from proxy_bootstrap.artifacts import ArtifactResolver
from proxy_bootstrap.errors import DependencyUnsatisfied
from proxy_bootstrap.initializer import InitCall
from proxy_bootstrap.orchestrator import Orchestrator, StepStatus
from proxy_bootstrap.plan import (
    DeployLibrary,
    DeploymentPlan,
    DeployProxy,
    InitializationStrategy,
    InvokeInitializer,
    LinkAndDeployContract,
    build_plan,
)


def test_relayed_plan_forwards_initializer_through_proxy() -> None:
    plan = build_plan(InitializationStrategy.RELAYED)

    assert [type(step) for step in plan] == [DeployLibrary, LinkAndDeployContract, DeployProxy]
    assert plan.steps[1].libraries == {LIBRARY: LIBRARY}
    assert plan.steps[2].logic == LOGIC
    assert plan.steps[2].init == InitCall()


def test_direct_plan_initializes_logic_before_proxy() -> None:
    plan = build_plan("direct", initializer=InitCall("initialize", (1,)))

    assert [type(step) for step in plan] == [DeployLibrary, LinkAndDeployContract, InvokeInitializer, DeployProxy]
    assert plan.steps[2].target == LOGIC
    assert plan.steps[2].init.args == (1,)
    assert plan.steps[3].init is None


def test_plan_without_initialization() -> None:
    plan = build_plan(InitializationStrategy.NONE, proxy_args=("0xadmin",))

    assert len(plan) == 3
    assert plan.steps[2].init is None
    assert plan.steps[2].extra_args == ("0xadmin",)


def test_unknown_strategy_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_plan("sometimes")


def test_roles_must_be_unique() -> None:
    with pytest.raises(ValueError):
        DeploymentPlan((DeployLibrary(LIBRARY), DeployLibrary(LIBRARY)))

    plan = DeploymentPlan((DeployLibrary(LIBRARY), DeployLibrary(LIBRARY, name="OrderSetCopy")))
    assert [step.role for step in plan] == [LIBRARY, "OrderSetCopy"]


def test_validate_reports_first_missing_dependency() -> None:
    plan = DeploymentPlan(
        (
            LinkAndDeployContract(LOGIC, libraries={LIBRARY: LIBRARY}),
            DeployLibrary(LIBRARY),
        )
    )

    with pytest.raises(DependencyUnsatisfied) as excinfo:
        plan.validate()

    assert excinfo.value.missing == (LIBRARY,)


def test_initializer_step_requires_its_target() -> None:
    plan = DeploymentPlan((DeployLibrary(LIBRARY), InvokeInitializer(target=LOGIC)))

    with pytest.raises(DependencyUnsatisfied):
        plan.validate()
    assert plan.steps[1].role == f"{LOGIC}.initialize"


@pytest.mark.parametrize("strategy", list(InitializationStrategy))
def test_no_step_runs_before_its_dependencies(strategy: InitializationStrategy, resolver: ArtifactResolver) -> None:
    canonical = build_plan(strategy)

    for ordering in itertools.permutations(canonical.steps):
        plan = DeploymentPlan(ordering)
        ledger = FakeLedger()
        try:
            record = Orchestrator(ledger, resolver).run(plan)
        except DependencyUnsatisfied as exc:
            record = exc.record
            with pytest.raises(DependencyUnsatisfied):
                plan.validate()
        else:
            plan.validate()
            assert record.complete

        confirmed = [outcome for outcome in record.outcomes if outcome.status is StepStatus.CONFIRMED]
        assert len(ledger.transactions) == len(confirmed)

        order = {outcome.step.role: index for index, outcome in enumerate(record.outcomes)}
        for outcome in confirmed:
            for role in outcome.step.requires():
                assert order[role] < order[outcome.step.role]
                assert record.outcomes[order[role]].status is StepStatus.CONFIRMED

        logic_outcome = record.outcomes[order[LOGIC]]
        if logic_outcome.status is StepStatus.CONFIRMED:
            library_tx = record.outcomes[order[LIBRARY]].receipt.tx_hash
            assert ledger.index_of(library_tx) < ledger.index_of(logic_outcome.receipt.tx_hash)
        if record.outcomes[order[PROXY]].status is StepStatus.CONFIRMED:
            assert logic_outcome.status is StepStatus.CONFIRMED
