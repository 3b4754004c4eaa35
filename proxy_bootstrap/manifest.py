"""Persisted record of what a deployment run put on chain."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .orchestrator import DeploymentRecord

SEPARATOR = "-" * 60


def _json_friendly(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_json_friendly(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _json_friendly(item) for key, item in value.items()}
    return value


@dataclass(frozen=True)
class ManifestEntry:
    artifact: str
    address: str
    tx_hash: str
    block_number: int
    constructor_args: List[Any] = field(default_factory=list)
    status: str = "confirmed"
    initialized: bool = False
    init_tx_hash: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "artifact": self.artifact,
            "address": self.address,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "constructor_args": list(self.constructor_args),
            "status": self.status,
            "initialized": self.initialized,
            "init_tx_hash": self.init_tx_hash,
        }


@dataclass
class DeploymentManifest:
    """Role -> confirmed deployment. Only confirmed steps appear, once each."""

    network: str = "unknown"
    chain_id: Optional[int] = None
    strategy: Optional[str] = None
    contracts: Dict[str, ManifestEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.contracts)

    def __getitem__(self, role: str) -> ManifestEntry:
        return self.contracts[role]

    def __contains__(self, role: object) -> bool:
        return role in self.contracts

    @classmethod
    def from_record(
        cls,
        record: DeploymentRecord,
        *,
        network: str = "unknown",
        chain_id: int | None = None,
        strategy: str | None = None,
    ) -> "DeploymentManifest":
        contracts: Dict[str, ManifestEntry] = {}
        for role, instance in record.instances.items():
            init_tx = record.initialized.get(role)
            contracts[role] = ManifestEntry(
                artifact=instance.artifact,
                address=instance.address,
                tx_hash=instance.tx_hash,
                block_number=instance.block_number,
                constructor_args=_json_friendly(list(instance.constructor_args)),
                initialized=init_tx is not None,
                init_tx_hash=init_tx,
            )
        return cls(network=network, chain_id=chain_id, strategy=strategy, contracts=contracts)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network,
            "chain_id": self.chain_id,
            "strategy": self.strategy,
            "contracts": {role: entry.as_dict() for role, entry in self.contracts.items()},
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DeploymentManifest":
        contracts = payload.get("contracts")
        if not isinstance(contracts, dict):
            raise ValueError("Manifest payload is missing its contracts mapping")
        return cls(
            network=str(payload.get("network", "unknown")),
            chain_id=payload.get("chain_id"),
            strategy=payload.get("strategy"),
            contracts={role: ManifestEntry(**entry) for role, entry in contracts.items()},
        )

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as file:
            json.dump(self.as_dict(), file, indent=2)
            file.write("\n")
        return path

    @classmethod
    def load(cls, path: Path) -> "DeploymentManifest":
        with path.open("r", encoding="utf-8") as file:
            return cls.from_dict(json.load(file))


def format_summary(manifest: DeploymentManifest) -> str:
    """Render ``manifest`` for a terminal, one block per contract."""

    strategy = f" (strategy: {manifest.strategy})" if manifest.strategy else ""
    lines = [f"\n🧠 Deployed {len(manifest)} contracts on {manifest.network}{strategy}:\n"]
    for role, entry in manifest.contracts.items():
        lines.append(f"📦 Contract:  {role} ({entry.artifact})")
        lines.append(f"📍 Address:   {entry.address}")
        lines.append(f"🔗 Tx Hash:   {entry.tx_hash}")
        lines.append(f"🧱 Block:     {entry.block_number}")
        if entry.initialized:
            lines.append(f"🔐 Initialized: {entry.init_tx_hash}")
        lines.append(SEPARATOR)
    return "\n".join(lines)


__all__ = ["DeploymentManifest", "ManifestEntry", "format_summary"]
