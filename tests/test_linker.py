from __future__ import annotations

import pytest

from fakes import LIBRARY, logic_payload, truffle_placeholder
from proxy_bootstrap.artifacts import Artifact, LinkReference
from proxy_bootstrap.errors import UnresolvedLibraryReference
from proxy_bootstrap.linker import link, unlinked_libraries

LIBRARY_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def test_link_fills_every_placeholder():
    artifact = Artifact.from_json(logic_payload())

    linked = link(artifact, {LIBRARY: LIBRARY_ADDRESS})

    expected_address = LIBRARY_ADDRESS[2:].lower()
    assert linked == "0x608060405234" + expected_address + "6000396000f3fe" + expected_address + "63"
    assert unlinked_libraries(linked) == ()
    assert artifact.bytecode.count(truffle_placeholder(LIBRARY)) == 2


def test_link_is_deterministic():
    artifact = Artifact.from_json(logic_payload())

    assert link(artifact, {LIBRARY: LIBRARY_ADDRESS}) == link(artifact, {LIBRARY: LIBRARY_ADDRESS})


def test_link_without_library_address_raises():
    artifact = Artifact.from_json(logic_payload())

    with pytest.raises(UnresolvedLibraryReference) as excinfo:
        link(artifact, {"SomeOtherLibrary": LIBRARY_ADDRESS})

    assert excinfo.value.library == LIBRARY
    assert excinfo.value.artifact == artifact.name


def test_link_rejects_malformed_addresses():
    artifact = Artifact.from_json(logic_payload())

    with pytest.raises(ValueError):
        link(artifact, {LIBRARY: "0x1234"})


def test_link_matches_truncated_truffle_names():
    long_name = "VeryLongLibraryNameThatTruffleMustTruncateHere"
    artifact = Artifact.from_json(logic_payload(library=long_name))

    linked = link(artifact, {long_name: LIBRARY_ADDRESS})

    assert unlinked_libraries(linked) == ()


def test_link_uses_explicit_offsets():
    artifact = Artifact(
        name="Auction",
        bytecode="0x6080" + "__$" + "cd" * 17 + "$__" + "00",
        link_references=(LinkReference(library="OrderSet", offsets=(2,)),),
    )

    linked = link(artifact, {"OrderSet": LIBRARY_ADDRESS})

    assert linked == "0x6080" + LIBRARY_ADDRESS[2:].lower() + "00"


def test_link_rejects_offsets_beyond_bytecode():
    artifact = Artifact(
        name="Auction",
        bytecode="0x6080",
        link_references=(LinkReference(library="OrderSet", offsets=(2,)),),
    )

    with pytest.raises(ValueError):
        link(artifact, {"OrderSet": LIBRARY_ADDRESS})


def test_artifact_without_references_is_returned_unchanged():
    artifact = Artifact(name="Plain", bytecode="0x60806040")

    assert link(artifact, {}) == "0x60806040"
