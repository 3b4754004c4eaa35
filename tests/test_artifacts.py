from __future__ import annotations

import json
from pathlib import Path

import pytest

from fakes import LIBRARY, LOGIC, library_payload, logic_payload, proxy_payload, truffle_placeholder
from proxy_bootstrap.artifacts import Artifact, ArtifactResolver, LinkReference, scan_link_references
from proxy_bootstrap.errors import ArtifactNotFound


def test_truffle_artifact_exposes_placeholder_offsets() -> None:
    artifact = Artifact.from_json(logic_payload())

    assert artifact.name == LOGIC
    assert artifact.libraries == (LIBRARY,)
    reference = artifact.link_references[0]
    assert reference.offsets == (6, 33)
    assert reference.length == 20
    assert artifact.functions("initialize")[0]["inputs"] == []


def test_hardhat_link_references_take_precedence_over_scanning() -> None:
    placeholder = "__$" + "ab" * 17 + "$__"
    payload = {
        "contractName": "Auction",
        "abi": [],
        "bytecode": "0x6080" + placeholder + "00",
        "linkReferences": {
            "contracts/libraries/OrderSet.sol": {"OrderSet": [{"length": 20, "start": 2}]},
        },
    }

    artifact = Artifact.from_json(payload)

    assert artifact.link_references == (
        LinkReference(library="OrderSet", offsets=(2,), source="contracts/libraries/OrderSet.sol"),
    )


def test_solc_standard_json_entry_is_accepted() -> None:
    payload = {"abi": [], "evm": {"bytecode": {"object": "6080604052", "linkReferences": {}}}}

    artifact = Artifact.from_json(payload, name="Plain")

    assert artifact.name == "Plain"
    assert artifact.bytecode == "0x6080604052"
    assert artifact.link_references == ()


def test_payload_without_bytecode_is_rejected() -> None:
    with pytest.raises(ValueError):
        Artifact.from_json({"contractName": "Interface", "abi": [], "bytecode": "0x"})


def test_scan_link_references_reads_truncated_names() -> None:
    long_name = "VeryLongLibraryNameThatTruffleMustTruncateHere"
    bytecode = "0x60" + truffle_placeholder(long_name) + "00"

    (reference,) = scan_link_references(bytecode)

    assert reference.library == long_name[:36]
    assert reference.matches(long_name)
    assert not reference.matches("SomethingElse")


def test_resolver_returns_in_memory_artifacts(resolver: ArtifactResolver) -> None:
    first = resolver.resolve(LOGIC)
    assert first is resolver.resolve(LOGIC)


def test_resolver_raises_for_unknown_name(resolver: ArtifactResolver) -> None:
    with pytest.raises(ArtifactNotFound) as excinfo:
        resolver.resolve("Missing")
    assert excinfo.value.name == "Missing"


def _write(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_resolver_reads_truffle_build_directory(tmp_path: Path) -> None:
    _write(tmp_path / f"{LIBRARY}.json", library_payload())
    _write(tmp_path / f"{LOGIC}.json", logic_payload())

    resolver = ArtifactResolver.from_directory(tmp_path)

    assert resolver.resolve(LIBRARY).link_references == ()
    assert resolver.resolve(LOGIC).libraries == (LIBRARY,)


def test_resolver_reads_nested_hardhat_layout_and_skips_debug_files(tmp_path: Path) -> None:
    _write(tmp_path / "contracts" / "Proxy.sol" / "Proxy.json", proxy_payload())
    (tmp_path / "contracts" / "Proxy.sol" / "Proxy.dbg.json").write_text("{not json", encoding="utf-8")

    resolver = ArtifactResolver.from_directory(tmp_path)

    assert resolver.resolve("Proxy").constructor() is not None


def test_resolver_reports_unreadable_artifacts(tmp_path: Path) -> None:
    (tmp_path / "Broken.json").write_text("{", encoding="utf-8")
    _write(tmp_path / "Interface.json", {"contractName": "Interface", "abi": []})

    resolver = ArtifactResolver.from_directory(tmp_path)

    with pytest.raises(ArtifactNotFound, match="unable to read"):
        resolver.resolve("Broken")
    with pytest.raises(ArtifactNotFound, match="not a compiled artifact"):
        resolver.resolve("Interface")


def test_resolver_on_missing_directory_finds_nothing(tmp_path: Path) -> None:
    resolver = ArtifactResolver.from_directory(tmp_path / "absent")

    with pytest.raises(ArtifactNotFound):
        resolver.resolve(LOGIC)
