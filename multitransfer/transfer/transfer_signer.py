"""
Transfer Signers

A signer signs and broadcasts one transfer at a time. ``submit`` returns
immediately; the outcome is published through ``current_hash`` /
``current_error`` and every registered listener is notified when either
changes. ``reset`` clears the outcome so the signer can be reused for the
next position. A result that arrives after ``reset`` belongs to a superseded
request and is dropped.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError

from multitransfer.core.utils.async_utils import safe_ensure_future
from multitransfer.logger import MultiTransferLogger
from multitransfer.transfer import transfer_constants as CONSTANTS
from multitransfer.transfer.data_types import TransferRequest, Web3ConnectionConfig
from multitransfer.transfer.transfer_utils import SignerBusyError, TransferRejectedError

SignerListener = Callable[["TransferSignerBase"], None]


class TransferSignerBase(ABC):
    _logger: Optional[MultiTransferLogger] = None

    def __init__(self):
        self._current_hash: Optional[str] = None
        self._current_error: Optional[Exception] = None
        self._is_pending = False
        self._request_task: Optional[asyncio.Future] = None
        self._generation = 0
        self._listeners: List[SignerListener] = []

    @classmethod
    def logger(cls) -> MultiTransferLogger:
        if cls._logger is None:
            cls._logger = logging.getLogger(MultiTransferLogger.logger_name_for_class(cls))
        return cls._logger

    @property
    def current_hash(self) -> Optional[str]:
        return self._current_hash

    @property
    def current_error(self) -> Optional[Exception]:
        return self._current_error

    @property
    def is_pending(self) -> bool:
        """True while a request is waiting for a signature or for the broadcast."""
        return self._is_pending

    def add_listener(self, listener: SignerListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SignerListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def submit(self, request: TransferRequest):
        """
        Start signing and broadcasting a transfer.

        Raises:
            SignerBusyError: If a previous request has not settled yet
        """
        if self._is_pending:
            raise SignerBusyError(f"Signer busy, cannot sign token #{request.token_id}")
        self._generation += 1
        self._is_pending = True
        self._current_hash = None
        self._current_error = None
        self.logger().debug(f"[SIGNER] Signing transfer of token #{request.token_id}")
        self._request_task = safe_ensure_future(self._run_request(request, self._generation))

    def reset(self):
        """Clear the outcome of the last request. A request still in progress is orphaned."""
        self._generation += 1
        self._is_pending = False
        self._current_hash = None
        self._current_error = None
        self._request_task = None

    async def _run_request(self, request: TransferRequest, generation: int):
        try:
            tx_hash = await self._sign_and_send(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation != self._generation:
                self.logger().debug(f"[SIGNER] Dropping error of superseded request for token #{request.token_id}")
                return
            self.logger().warning(f"[SIGNER] Transfer of token #{request.token_id} failed before broadcast: {e}")
            self._is_pending = False
            self._current_error = e
        else:
            if generation != self._generation:
                self.logger().warning(
                    f"[SIGNER] Dropping handle {MultiTransferLogger.short_hash(tx_hash)} "
                    f"of superseded request for token #{request.token_id}"
                )
                return
            self.logger().debug(
                f"[SIGNER] Token #{request.token_id} broadcast as {MultiTransferLogger.short_hash(tx_hash)}"
            )
            self._is_pending = False
            self._current_hash = tx_hash
        self._notify_listeners()

    def _notify_listeners(self):
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                self.logger().error("[SIGNER] Listener raised while handling a signer update", exc_info=True)

    @abstractmethod
    async def _sign_and_send(self, request: TransferRequest) -> str:
        """Sign and broadcast the transfer, returning the transaction hash."""
        ...


class Web3TransferSigner(TransferSignerBase):
    """
    Signs ERC721 transfers with a local key and broadcasts them over JSON-RPC.

    Nonces come from the pending transaction count, which is safe because the
    driver never has two requests in flight.
    """

    def __init__(self, config: Web3ConnectionConfig, private_key: str, w3: Optional[AsyncWeb3] = None):
        super().__init__()
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self._config = config
        self._account: LocalAccount = Account.from_key(private_key)
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def w3(self) -> AsyncWeb3:
        return self._w3

    async def _sign_and_send(self, request: TransferRequest) -> str:
        if Web3.to_checksum_address(request.from_address) != self._account.address:
            raise TransferRejectedError(
                f"Signer {self._account.address} cannot send on behalf of {request.from_address}"
            )

        contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(request.contract_address),
            abi=CONSTANTS.ERC721_ABI,
        )
        nonce = await self._w3.eth.get_transaction_count(self._account.address, CONSTANTS.PENDING_BLOCK_IDENTIFIER)
        tx_params = {
            "from": self._account.address,
            "nonce": nonce,
        }
        if self._config.chain_id is not None:
            tx_params["chainId"] = self._config.chain_id
        if self._config.gas_limit is not None:
            tx_params["gas"] = self._config.gas_limit

        contract_function = getattr(contract.functions, request.function_name)
        try:
            tx = await contract_function(
                request.from_address,
                Web3.to_checksum_address(request.to),
                request.token_id,
            ).build_transaction(tx_params)
        except ContractLogicError as e:
            raise TransferRejectedError(f"Transfer of token #{request.token_id} would revert: {e}") from e

        signed_tx = self._account.sign_transaction(tx)
        tx_hash = await self._w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return Web3.to_hex(tx_hash)
