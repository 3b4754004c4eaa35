"""Explicit deployment configuration, loaded from the environment or ``.env``."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_ARTIFACTS_DIR = Path("build/contracts")
DEFAULT_MANIFEST_DIR = Path("deployments")


@dataclass(frozen=True)
class DeployConfig:
    """Network handle and deployer account for one run."""

    rpc_url: str
    private_key: str
    network: str = "development"
    chain_id: Optional[int] = None
    confirmations: int = 1
    timeout: float = 120.0
    poll_latency: float = 0.5
    gas_price_gwei: Optional[float] = None
    artifacts_dir: Path = DEFAULT_ARTIFACTS_DIR
    manifest_path: Optional[Path] = None

    @property
    def resolved_manifest_path(self) -> Path:
        return self.manifest_path or DEFAULT_MANIFEST_DIR / f"{self.network}.json"

    def __repr__(self) -> str:
        return (
            f"DeployConfig(rpc_url={self.rpc_url!r}, network={self.network!r}, "
            f"chain_id={self.chain_id!r}, confirmations={self.confirmations!r})"
        )


def _get_env() -> Mapping[str, str]:
    """Expose ``os.environ`` (after ``.env``) separately to simplify testing."""

    load_dotenv()
    return os.environ


def _first(env: Mapping[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        value = env.get(key)
        if value:
            return value
    return None


def _number(env: Mapping[str, str], key: str, kind: type, default=None):
    raw = env.get(key)
    if raw in (None, ""):
        return default
    try:
        return kind(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a {kind.__name__}, got {raw!r}") from exc


def load_config(env: Mapping[str, str] | None = None) -> DeployConfig:
    """Build a :class:`DeployConfig` from environment variables.

    Parameters
    ----------
    env:
        Optional mapping used to resolve variables. When omitted
        ``os.environ`` (after ``load_dotenv``) is used.

    Raises
    ------
    RuntimeError
        If the RPC URL or the deployer key is missing.
    ValueError
        If a numeric setting cannot be parsed.
    """

    if env is None:
        env = _get_env()

    rpc_url = _first(env, "DEPLOY_RPC_URL", "RPC_URL")
    if not rpc_url:
        raise RuntimeError("Set DEPLOY_RPC_URL (or RPC_URL) before deploying.")
    private_key = _first(env, "DEPLOYER_PRIVATE_KEY", "PRIVATE_KEY")
    if not private_key:
        raise RuntimeError("Set DEPLOYER_PRIVATE_KEY (or PRIVATE_KEY) before deploying.")

    confirmations = _number(env, "DEPLOY_CONFIRMATIONS", int, 1)
    if confirmations < 1:
        raise ValueError("DEPLOY_CONFIRMATIONS must be at least 1")

    manifest = env.get("DEPLOY_MANIFEST")
    return DeployConfig(
        rpc_url=rpc_url,
        private_key=private_key,
        network=env.get("DEPLOY_NETWORK") or "development",
        chain_id=_number(env, "CHAIN_ID", int),
        confirmations=confirmations,
        timeout=_number(env, "DEPLOY_TIMEOUT", float, 120.0),
        poll_latency=_number(env, "DEPLOY_POLL_LATENCY", float, 0.5),
        gas_price_gwei=_number(env, "DEPLOY_GAS_PRICE_GWEI", float),
        artifacts_dir=Path(env.get("ARTIFACTS_DIR") or DEFAULT_ARTIFACTS_DIR),
        manifest_path=Path(manifest) if manifest else None,
    )


__all__ = ["DeployConfig", "load_config"]
