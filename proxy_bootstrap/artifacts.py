"""Load compiled contract artifacts produced by Truffle, Hardhat or solc."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ArtifactNotFound

_LOGGER = logging.getLogger(__name__)

ADDRESS_LENGTH = 20
# Truffle writes "__" + name, padded with "_" to the 40 hex characters of an address.
_PLACEHOLDER_RE = re.compile(r"__[A-Za-z0-9_$./:\-]{38}")
TRUFFLE_NAME_LIMIT = 36


def _strip_hex(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def placeholder_name(placeholder: str) -> str:
    """Return the library name encoded in a 40 character placeholder."""

    name = placeholder[2:].rstrip("_")
    if ":" in name:
        name = name.rsplit(":", 1)[1]
    return name


@dataclass(frozen=True)
class LinkReference:
    """Placeholder positions for one library inside creation bytecode."""

    library: str
    offsets: Tuple[int, ...]
    length: int = ADDRESS_LENGTH
    source: Optional[str] = None

    def matches(self, name: str) -> bool:
        if name == self.library:
            return True
        return len(name) > TRUFFLE_NAME_LIMIT and name[:TRUFFLE_NAME_LIMIT] == self.library


def scan_link_references(bytecode: str) -> Tuple[LinkReference, ...]:
    """Find Truffle/legacy solc placeholders embedded in ``bytecode``."""

    offsets: Dict[str, List[int]] = {}
    for match in _PLACEHOLDER_RE.finditer(_strip_hex(bytecode)):
        name = placeholder_name(match.group(0))
        offsets.setdefault(name, []).append(match.start() // 2)
    return tuple(LinkReference(library=name, offsets=tuple(found)) for name, found in offsets.items())


def _parse_link_references(payload: Mapping[str, Any]) -> Tuple[LinkReference, ...]:
    merged: Dict[str, List[int]] = {}
    sources: Dict[str, str] = {}
    for source, libraries in payload.items():
        if not isinstance(libraries, Mapping):
            continue
        for library, positions in libraries.items():
            for position in positions or ():
                if int(position.get("length", ADDRESS_LENGTH)) != ADDRESS_LENGTH:
                    raise ValueError(f"Unexpected link reference length for {library}: {position}")
                merged.setdefault(library, []).append(int(position["start"]))
            sources.setdefault(library, source)
    return tuple(
        LinkReference(library=library, offsets=tuple(sorted(offsets)), source=sources.get(library))
        for library, offsets in merged.items()
    )


@dataclass(frozen=True)
class Artifact:
    """Immutable compiled-contract descriptor."""

    name: str
    bytecode: str
    abi: Tuple[Mapping[str, Any], ...] = ()
    link_references: Tuple[LinkReference, ...] = field(default=())

    @property
    def libraries(self) -> Tuple[str, ...]:
        return tuple(reference.library for reference in self.link_references)

    def functions(self, name: str) -> List[Mapping[str, Any]]:
        return [entry for entry in self.abi if entry.get("type") == "function" and entry.get("name") == name]

    def constructor(self) -> Optional[Mapping[str, Any]]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry
        return None

    @classmethod
    def from_json(cls, payload: Mapping[str, Any], name: str | None = None) -> "Artifact":
        """Build an artifact from a Truffle, Hardhat or solc standard-json entry.

        Explicit ``linkReferences`` win over placeholders scanned from the hex,
        since solc >= 0.5 placeholders carry a hash rather than a name.
        """

        resolved_name = payload.get("contractName") or name
        if not resolved_name:
            raise ValueError("Artifact payload does not name its contract")

        raw_bytecode: Any = payload.get("bytecode")
        raw_links: Any = payload.get("linkReferences")
        if raw_bytecode is None and isinstance(payload.get("evm"), Mapping):
            raw_bytecode = payload["evm"].get("bytecode")
        if isinstance(raw_bytecode, Mapping):
            raw_links = raw_links or raw_bytecode.get("linkReferences")
            raw_bytecode = raw_bytecode.get("object")
        if not isinstance(raw_bytecode, str) or not _strip_hex(raw_bytecode):
            raise ValueError(f"Artifact {resolved_name} has no creation bytecode")

        abi = payload.get("abi")
        if not isinstance(abi, list):
            raise ValueError(f"Artifact {resolved_name} has no ABI")

        bytecode = "0x" + _strip_hex(raw_bytecode)
        if isinstance(raw_links, Mapping) and raw_links:
            references = _parse_link_references(raw_links)
        else:
            references = scan_link_references(bytecode)

        return cls(
            name=str(resolved_name),
            bytecode=bytecode,
            abi=tuple(abi),
            link_references=references,
        )


class ArtifactResolver:
    """Lookup over a precompiled artifact set, either in memory or on disk."""

    def __init__(self, artifacts: Mapping[str, Artifact] | None = None, *, directory: Path | None = None) -> None:
        self._artifacts: Dict[str, Artifact] = dict(artifacts or {})
        self._directory = directory
        self._index: Optional[Dict[str, Path]] = None

    @classmethod
    def from_directory(cls, directory: Path | str) -> "ArtifactResolver":
        return cls(directory=Path(directory).expanduser())

    @classmethod
    def from_payloads(cls, payloads: Iterable[Mapping[str, Any]]) -> "ArtifactResolver":
        artifacts = [Artifact.from_json(payload) for payload in payloads]
        return cls({artifact.name: artifact for artifact in artifacts})

    def _build_index(self) -> Dict[str, Path]:
        index: Dict[str, Path] = {}
        if self._directory is None or not self._directory.is_dir():
            return index
        for path in sorted(self._directory.rglob("*.json")):
            if path.name.endswith(".dbg.json"):
                continue
            # Top-level Truffle artifacts shadow nested Hardhat copies.
            if path.stem in index and path.parent != self._directory:
                continue
            index[path.stem] = path
        _LOGGER.debug("Indexed %d artifacts under %s", len(index), self._directory)
        return index

    def _load(self, name: str) -> Optional[Artifact]:
        if self._index is None:
            self._index = self._build_index()
        path = self._index.get(name)
        if path is None:
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ArtifactNotFound(name, f"unable to read {path}: {exc}") from exc
        try:
            return Artifact.from_json(payload, name=name)
        except ValueError as exc:
            raise ArtifactNotFound(name, f"{path} is not a compiled artifact: {exc}") from exc

    def resolve(self, name: str) -> Artifact:
        """Return the artifact called ``name``.

        Raises:
            ArtifactNotFound: If no descriptor with that name exists.
        """

        artifact = self._artifacts.get(name)
        if artifact is not None:
            return artifact
        artifact = self._load(name)
        if artifact is None:
            raise ArtifactNotFound(name)
        self._artifacts[name] = artifact
        return artifact


__all__ = [
    "ADDRESS_LENGTH",
    "Artifact",
    "ArtifactResolver",
    "LinkReference",
    "placeholder_name",
    "scan_link_references",
]
