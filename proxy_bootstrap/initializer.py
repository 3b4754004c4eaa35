"""Initializer selection and the exactly-once invocation guard.

Upgradeable contracts replace constructor logic with an ``initialize``
routine that must run once. The guard here never issues the same
initialization twice within a run, and it reports the contract's own
"already initialized" revert as :class:`AlreadyInitialized` rather than as
a generic rejection.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from web3 import Web3

from .artifacts import Artifact
from .errors import AlreadyInitialized, ArgumentMismatch, InitializerNotFound, TransactionRejected
from .ledger import Ledger, Receipt

_LOGGER = logging.getLogger(__name__)

DEFAULT_INITIALIZER = "initialize"

_ALREADY_INITIALIZED_REASONS = (
    "already initialized",
    "initializable: contract is already initialized",
)
# OpenZeppelin >= 5 reverts with the InvalidInitialization() custom error.
_INVALID_INITIALIZATION_SELECTOR = Web3.keccak(text="InvalidInitialization()")[:4]


def _canonical_type(parameter: Mapping[str, Any]) -> str:
    kind = str(parameter["type"])
    if kind.startswith("tuple"):
        inner = ",".join(_canonical_type(component) for component in parameter.get("components", ()))
        return f"({inner}){kind[len('tuple'):]}"
    return kind


def function_signature(entry: Mapping[str, Any]) -> str:
    """Return the canonical ``name(type,...)`` text signature of an ABI entry."""

    types = ",".join(_canonical_type(parameter) for parameter in entry.get("inputs", ()))
    return f"{entry['name']}({types})"


def function_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


@dataclass(frozen=True)
class InitCall:
    """Which initializer to run and with which arguments."""

    function: str = DEFAULT_INITIALIZER
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class InitPayload:
    signature: str
    selector: bytes
    encoded_args: bytes = b""

    @property
    def data(self) -> bytes:
        return self.selector + self.encoded_args

    def hex(self) -> str:
        return "0x" + self.data.hex()


def select_initializer(
    artifact: Artifact,
    function: str = DEFAULT_INITIALIZER,
    args: Sequence[Any] = (),
) -> InitPayload:
    """Build the call payload for ``artifact``'s initializer.

    Args:
        artifact: Logic contract artifact whose ABI declares the initializer.
        function: Function name, or a full text signature such as
            ``"initialize(address,uint256)"`` to pick one overload.
        args: Positional arguments, encoded with ``eth-abi``.

    Returns:
        The :class:`InitPayload` with the 4-byte selector and encoded args.

    Raises:
        InitializerNotFound: If no ABI function matches name and arity.
        ArgumentMismatch: If ``args`` cannot be encoded as the declared types.
    """

    name = function.split("(", 1)[0]
    candidates: List[Mapping[str, Any]] = [
        entry for entry in artifact.functions(name) if len(entry.get("inputs", ())) == len(args)
    ]
    if "(" in function:
        candidates = [entry for entry in candidates if function_signature(entry) == function.replace(" ", "")]
    if not candidates:
        raise InitializerNotFound(f"{artifact.name} exposes no {function} taking {len(args)} argument(s)")
    if len(candidates) > 1:
        overloads = ", ".join(function_signature(entry) for entry in candidates)
        raise InitializerNotFound(f"{artifact.name} has ambiguous initializers ({overloads}); pass a full signature")

    entry = candidates[0]
    signature = function_signature(entry)
    types = [_canonical_type(parameter) for parameter in entry.get("inputs", ())]
    try:
        encoded = encode(types, list(args)) if types else b""
    except (EncodingError, TypeError) as exc:
        raise ArgumentMismatch(f"Cannot encode arguments for {artifact.name}.{signature}: {exc}") from exc
    return InitPayload(signature=signature, selector=function_selector(signature), encoded_args=encoded)


def is_already_initialized_revert(error: TransactionRejected) -> bool:
    """Whether a rejection is the target contract refusing a second initialization."""

    reason = (error.reason or "").lower()
    if any(marker in reason for marker in _ALREADY_INITIALIZED_REASONS):
        return True
    data = error.data
    if isinstance(data, str) and data.startswith("0x"):
        try:
            data = bytes.fromhex(data[2:])
        except ValueError:
            return False
    return isinstance(data, (bytes, bytearray)) and bytes(data[:4]) == _INVALID_INITIALIZATION_SELECTOR


class InitState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"


class InitializationGuard:
    """Tracks which targets this run has initialized, keyed by address."""

    def __init__(self) -> None:
        self._states: Dict[str, InitState] = {}

    @staticmethod
    def _key(address: str) -> str:
        return address.lower()

    def state(self, address: str) -> InitState:
        return self._states.get(self._key(address), InitState.UNINITIALIZED)

    def mark_relayed(self, address: str) -> None:
        """Record that ``address`` was initialized by its own creation transaction."""

        key = self._key(address)
        if self._states.get(key, InitState.UNINITIALIZED) is not InitState.UNINITIALIZED:
            raise AlreadyInitialized(address, "initialization already issued in this run")
        self._states[key] = InitState.INITIALIZED

    def guarded_invoke(self, ledger: Ledger, target: str, payload: InitPayload) -> Receipt:
        """Issue ``payload`` against ``target`` unless this run already did.

        Raises:
            AlreadyInitialized: If the call was already issued in this run or
                the contract reverts because it is initialized.
            TransactionRejected: For any other revert.
        """

        key = self._key(target)
        current = self._states.get(key, InitState.UNINITIALIZED)
        if current is not InitState.UNINITIALIZED:
            raise AlreadyInitialized(target, f"initialization already {current.value} in this run")

        # Timeouts and network errors leave the target INITIALIZING: the call may still land.
        self._states[key] = InitState.INITIALIZING
        _LOGGER.info("Calling %s on %s", payload.signature, target)
        _LOGGER.debug("Initializer calldata %s", payload.hex())
        try:
            receipt = ledger.call(target, payload.data)
        except TransactionRejected as exc:
            if is_already_initialized_revert(exc):
                self._states[key] = InitState.INITIALIZED
                raise AlreadyInitialized(target, exc.reason) from exc
            self._states[key] = InitState.UNINITIALIZED
            raise
        self._states[key] = InitState.INITIALIZED
        return receipt


__all__ = [
    "DEFAULT_INITIALIZER",
    "InitCall",
    "InitPayload",
    "InitState",
    "InitializationGuard",
    "function_selector",
    "function_signature",
    "is_already_initialized_revert",
    "select_initializer",
]
