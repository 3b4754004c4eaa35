"""Network collaborator: publish bytecode and send calls, waiting for confirmation."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterator, Mapping, Optional, Protocol, Sequence

import requests
from eth_account import Account
from web3 import Web3
from eth_abi.exceptions import EncodingError
from web3.exceptions import ContractLogicError, MismatchedABI, TimeExhausted, Web3RPCError, Web3ValidationError

from .errors import ArgumentMismatch, ConfirmationTimeout, DeploymentError, NetworkUnavailable, TransactionRejected

if TYPE_CHECKING:  # pragma: no cover - typing only
    from eth_account.signers.local import LocalAccount

    from .config import DeployConfig

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Receipt:
    """Confirmed outcome of a publish or call."""

    tx_hash: str
    block_number: int
    contract_address: Optional[str] = None
    gas_used: Optional[int] = None


class Ledger(Protocol):
    """The two network operations the orchestrator relies on."""

    def publish(
        self,
        bytecode: str,
        constructor_args: Sequence[Any] = (),
        abi: Sequence[Mapping[str, Any]] = (),
    ) -> Receipt:
        ...

    def call(self, address: str, data: bytes) -> Receipt:
        ...


def _revert_reason(exc: Exception) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    if exc.args:
        first = exc.args[0]
        if isinstance(first, Mapping):
            return str(first.get("message", first))
        return str(first)
    return exc.__class__.__name__


@contextmanager
def _validating(what: str) -> Iterator[None]:
    """Report local validation failures, raised before anything is sent, as :class:`ArgumentMismatch`."""

    try:
        yield
    except (Web3ValidationError, MismatchedABI, EncodingError, TypeError, ValueError) as exc:
        raise ArgumentMismatch(f"Invalid {what}: {exc}") from exc


class Web3Ledger:
    """:class:`Ledger` backed by ``web3.py`` and a local ``eth-account`` signer."""

    def __init__(
        self,
        w3: Web3,
        account: "LocalAccount",
        *,
        chain_id: int | None = None,
        confirmations: int = 1,
        timeout: float = 120.0,
        poll_latency: float = 0.5,
        gas_price_wei: int | None = None,
    ) -> None:
        if confirmations < 1:
            raise ValueError("confirmations must be at least 1")
        self.w3 = w3
        self.account = account
        self.confirmations = confirmations
        self.timeout = timeout
        self.poll_latency = poll_latency
        self.gas_price_wei = gas_price_wei
        self._chain_id = chain_id

    @classmethod
    def from_config(cls, config: "DeployConfig") -> "Web3Ledger":
        w3 = Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.timeout}))
        if not w3.is_connected():
            raise NetworkUnavailable(f"Unable to connect to RPC endpoint {config.rpc_url}")
        account = Account.from_key(config.private_key)
        gas_price = Web3.to_wei(config.gas_price_gwei, "gwei") if config.gas_price_gwei is not None else None
        return cls(
            w3,
            account,
            chain_id=config.chain_id,
            confirmations=config.confirmations,
            timeout=config.timeout,
            poll_latency=config.poll_latency,
            gas_price_wei=gas_price,
        )

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        try:
            yield
        except DeploymentError:
            raise
        except ContractLogicError as exc:
            raise TransactionRejected(_revert_reason(exc), getattr(exc, "data", None)) from exc
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout, ConnectionError) as exc:
            raise NetworkUnavailable(f"RPC endpoint unreachable: {exc}") from exc
        except (Web3RPCError, ValueError) as exc:
            # Node-side refusals (nonce too low, insufficient funds, ...) arrive as RPC errors.
            raise TransactionRejected(_revert_reason(exc)) from exc

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            with self._translate_errors():
                self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def _base_transaction(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "from": self.account.address,
            "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
            "chainId": self.chain_id,
        }
        if self.gas_price_wei is not None:
            params["gasPrice"] = self.gas_price_wei
        return params

    def _send(self, transaction: Dict[str, Any]) -> str:
        signed = self.account.sign_transaction(transaction)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return self.w3.to_hex(tx_hash)

    def _replay_revert(self, transaction: Dict[str, Any], block_number: int, tx_hash: str) -> TransactionRejected:
        """Re-run a reverted transaction as a call to recover its revert reason."""

        replay = {key: transaction[key] for key in ("from", "to", "data", "value", "gas") if key in transaction}
        try:
            self.w3.eth.call(replay, block_number)
        except ContractLogicError as exc:
            return TransactionRejected(_revert_reason(exc), getattr(exc, "data", None), tx_hash=tx_hash)
        return TransactionRejected("execution reverted", tx_hash=tx_hash)

    def _await(self, tx_hash: str, started: float, transaction: Dict[str, Any]) -> Any:
        deadline = started + self.timeout
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=max(deadline - time.monotonic(), 0.0),
                poll_latency=self.poll_latency,
            )
        except TimeExhausted as exc:
            raise ConfirmationTimeout(tx_hash, self.timeout) from exc

        if receipt["status"] == 0:
            raise self._replay_revert(transaction, receipt["blockNumber"], tx_hash)

        target_block = receipt["blockNumber"] + self.confirmations - 1
        while self.w3.eth.block_number < target_block:
            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(tx_hash, self.timeout)
            time.sleep(self.poll_latency)
        return receipt

    def publish(
        self,
        bytecode: str,
        constructor_args: Sequence[Any] = (),
        abi: Sequence[Mapping[str, Any]] = (),
    ) -> Receipt:
        """Deploy ``bytecode`` and block until the creation is confirmed."""

        started = time.monotonic()
        with self._translate_errors():
            contract = self.w3.eth.contract(abi=list(abi), bytecode=bytecode)
            with _validating("constructor arguments"):
                constructor = contract.constructor(*constructor_args)
            transaction = constructor.build_transaction(self._base_transaction())
            tx_hash = self._send(transaction)
            _LOGGER.info("Creation transaction %s sent from %s", tx_hash, self.account.address)
            receipt = self._await(tx_hash, started, transaction)
        address = receipt["contractAddress"]
        if not address:
            raise TransactionRejected("creation receipt carries no contract address", tx_hash=tx_hash)
        return Receipt(
            tx_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            contract_address=Web3.to_checksum_address(address),
            gas_used=receipt.get("gasUsed"),
        )

    def call(self, address: str, data: bytes) -> Receipt:
        """Send ``data`` to ``address``; reverts surface with their reason."""

        started = time.monotonic()
        with self._translate_errors():
            with _validating("call target"):
                target = Web3.to_checksum_address(address)
            transaction = self._base_transaction()
            transaction.update({"to": target, "data": Web3.to_hex(data)})
            # A mined revert only reports status 0; eth_call carries the reason.
            self.w3.eth.call(transaction)
            transaction["gas"] = self.w3.eth.estimate_gas(transaction)
            tx_hash = self._send(transaction)
            _LOGGER.info("Call transaction %s sent to %s", tx_hash, address)
            receipt = self._await(tx_hash, started, transaction)
        return Receipt(
            tx_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            gas_used=receipt.get("gasUsed"),
        )


__all__ = ["Ledger", "Receipt", "Web3Ledger"]
