"""Substitute library placeholders in creation bytecode with deployed addresses."""
from __future__ import annotations

from typing import List, Mapping, Optional

from web3 import Web3

from .artifacts import Artifact, LinkReference, scan_link_references
from .errors import UnresolvedLibraryReference


def _address_for(reference: LinkReference, library_addresses: Mapping[str, str]) -> Optional[str]:
    address = library_addresses.get(reference.library)
    if address is not None:
        return address
    for name, candidate in library_addresses.items():
        if reference.matches(name):
            return candidate
    return None


def _normalise(library: str, address: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid address for library {library}: {address!r}")
    return address[2:].lower() if address.startswith("0x") else address.lower()


def link(artifact: Artifact, library_addresses: Mapping[str, str]) -> str:
    """Return ``artifact``'s bytecode with every library placeholder filled in.

    Args:
        artifact: Artifact whose ``link_references`` describe the placeholders.
        library_addresses: Mapping of library name to deployed address.

    Returns:
        The linked bytecode as a ``0x`` prefixed hex string. The output only
        depends on the inputs.

    Raises:
        UnresolvedLibraryReference: If a referenced library has no address.
        ValueError: If a supplied address is malformed.
    """

    code: List[str] = list(artifact.bytecode[2:])
    for reference in artifact.link_references:
        address = _address_for(reference, library_addresses)
        if address is None:
            raise UnresolvedLibraryReference(artifact.name, reference.library)
        replacement = _normalise(reference.library, address)
        width = reference.length * 2
        for offset in reference.offsets:
            start = offset * 2
            if start + width > len(code):
                raise ValueError(f"Link reference for {reference.library} at byte {offset} exceeds bytecode")
            code[start : start + width] = replacement
    return "0x" + "".join(code)


def unlinked_libraries(bytecode: str) -> tuple[str, ...]:
    """Names of libraries whose placeholders are still present in ``bytecode``."""

    return tuple(reference.library for reference in scan_link_references(bytecode))


__all__ = ["link", "unlinked_libraries"]
