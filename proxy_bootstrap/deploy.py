"""Single entry point: library -> linked logic contract -> initialized proxy."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Optional

from .artifacts import ArtifactResolver
from .config import DeployConfig
from .errors import DeploymentError
from .initializer import InitCall
from .ledger import Ledger, Web3Ledger
from .manifest import DeploymentManifest
from .orchestrator import Orchestrator
from .plan import InitializationStrategy, build_plan

_LOGGER = logging.getLogger(__name__)


def deploy(
    network: Ledger,
    artifacts: ArtifactResolver,
    initialization_strategy: InitializationStrategy | str = InitializationStrategy.RELAYED,
    *,
    library: str = "IterableOrderedOrderSet",
    logic: str = "NFTAuction",
    proxy: str = "Proxy",
    initializer: InitCall | None = None,
    proxy_args: Iterable[Any] = (),
    logic_args: Iterable[Any] = (),
    network_name: str = "unknown",
    chain_id: int | None = None,
    manifest_path: Path | None = None,
    cancel: threading.Event | None = None,
) -> DeploymentManifest:
    """Deploy the library, the linked logic contract and its proxy.

    Args:
        network: Ledger the contracts are published to.
        artifacts: Resolver for the compiled artifact set.
        initialization_strategy: ``none``, ``direct`` or ``relayed``.
        manifest_path: When given, the manifest is written there, including
            the partial manifest of a failed run.

    Returns:
        The manifest of confirmed deployments.

    Raises:
        DeploymentError: When the run aborts. ``error.manifest`` holds the
            partial manifest and ``error.record`` the step-level record.
    """

    strategy = InitializationStrategy(initialization_strategy)
    plan = build_plan(
        strategy,
        library=library,
        logic=logic,
        proxy=proxy,
        initializer=initializer,
        proxy_args=proxy_args,
        logic_args=logic_args,
    )
    plan.validate()
    orchestrator = Orchestrator(network, artifacts)

    try:
        record = orchestrator.run(plan, cancel=cancel)
    except DeploymentError as exc:
        if exc.record is not None:
            exc.manifest = DeploymentManifest.from_record(
                exc.record, network=network_name, chain_id=chain_id, strategy=strategy.value
            )
            if manifest_path is not None:
                exc.manifest.write(manifest_path)
                _LOGGER.warning("Partial manifest written to %s", manifest_path)
        raise

    manifest = DeploymentManifest.from_record(record, network=network_name, chain_id=chain_id, strategy=strategy.value)
    if manifest_path is not None:
        manifest.write(manifest_path)
        _LOGGER.info("Manifest written to %s", manifest_path)
    return manifest


def deploy_from_config(
    config: DeployConfig,
    initialization_strategy: InitializationStrategy | str = InitializationStrategy.RELAYED,
    *,
    ledger: Optional[Ledger] = None,
    **kwargs: Any,
) -> DeploymentManifest:
    """Run :func:`deploy` against the network and artifacts named by ``config``."""

    if ledger is None:
        ledger = Web3Ledger.from_config(config)
    resolver = ArtifactResolver.from_directory(config.artifacts_dir)
    kwargs.setdefault("manifest_path", config.resolved_manifest_path)
    return deploy(
        ledger,
        resolver,
        initialization_strategy,
        network_name=config.network,
        chain_id=config.chain_id,
        **kwargs,
    )


__all__ = ["deploy", "deploy_from_config"]
