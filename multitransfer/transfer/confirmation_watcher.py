"""
Confirmation Watcher

Watches broadcast transfers until they are final on-chain, without blocking
the submission driver.

Architecture:
- One asyncio task per transaction hash, started at most once per hash
- Tasks run concurrently and may finish in any order
- Each finished task reports (tx_hash, status) through a callback; the owner
  applies it as a keyed update, so completion order never matters

Failure mapping:
- Receipt with success status -> SUCCESS
- Revert, client-side timeout or any client error -> FAILED
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted

from multitransfer.core.utils.async_utils import safe_ensure_future
from multitransfer.logger import MultiTransferLogger
from multitransfer.transfer import transfer_constants as CONSTANTS
from multitransfer.transfer.data_types import TransferStatus, Web3ConnectionConfig
from multitransfer.transfer.transfer_utils import ConfirmationTimeoutError, TransactionRevertedError

ConfirmationCallback = Callable[[str, TransferStatus], None]


class FinalityClientBase(ABC):
    """Chain client able to wait for a transaction to become final."""

    @abstractmethod
    async def wait_for_finality(self, tx_hash: str):
        """
        Wait until the transaction is final.

        Raises:
            Exception: If the transaction failed or could not be confirmed in time
        """
        ...


class Web3FinalityClient(FinalityClientBase):
    _logger: Optional[MultiTransferLogger] = None

    def __init__(self, config: Web3ConnectionConfig, w3: Optional[AsyncWeb3] = None):
        self._config = config
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))

    @classmethod
    def logger(cls) -> MultiTransferLogger:
        if cls._logger is None:
            cls._logger = logging.getLogger(MultiTransferLogger.logger_name_for_class(cls))
        return cls._logger

    async def wait_for_finality(self, tx_hash: str):
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self._config.confirmation_timeout,
                poll_latency=self._config.poll_latency,
            )
        except TimeExhausted as e:
            self.logger().network(f"Gave up waiting for receipt of {MultiTransferLogger.short_hash(tx_hash)}")
            raise ConfirmationTimeoutError(
                f"No receipt for {tx_hash} after {self._config.confirmation_timeout:.0f}s"
            ) from e

        if receipt["status"] != CONSTANTS.RECEIPT_STATUS_SUCCESS:
            raise TransactionRevertedError(f"Transaction {tx_hash} reverted in block {receipt.get('blockNumber')}")
        self.logger().debug(
            f"Transaction {MultiTransferLogger.short_hash(tx_hash)} final in block {receipt.get('blockNumber')}"
        )
        return receipt


class TransferConfirmationWatcher:
    _logger: Optional[MultiTransferLogger] = None

    def __init__(self, finality_client: FinalityClientBase, on_confirmation: ConfirmationCallback):
        self._finality_client = finality_client
        self._on_confirmation = on_confirmation
        self._watch_tasks: Dict[str, asyncio.Future] = {}

        # Statistics
        self._confirmed_count = 0
        self._failed_count = 0

    @classmethod
    def logger(cls) -> MultiTransferLogger:
        if cls._logger is None:
            cls._logger = logging.getLogger(MultiTransferLogger.logger_name_for_class(cls))
        return cls._logger

    @property
    def active_count(self) -> int:
        """Number of watches still waiting for finality."""
        return sum(1 for task in self._watch_tasks.values() if not task.done())

    @property
    def stats(self) -> dict:
        return {
            "watched": len(self._watch_tasks),
            "active": self.active_count,
            "confirmed": self._confirmed_count,
            "failed": self._failed_count,
        }

    def is_watching(self, tx_hash: str) -> bool:
        return tx_hash in self._watch_tasks

    def watch(self, tx_hash: str) -> bool:
        """
        Start watching a transaction.

        Returns:
            False if the hash is empty or already watched, True if a watch started
        """
        if not tx_hash or tx_hash in self._watch_tasks:
            return False
        self.logger().debug(f"[WATCHER] Watching {MultiTransferLogger.short_hash(tx_hash)}")
        self._watch_tasks[tx_hash] = safe_ensure_future(self._watch(tx_hash))
        return True

    def stop(self):
        """Stop waiting on every transaction. Broadcast transactions are not affected."""
        cancelled = 0
        for task in self._watch_tasks.values():
            if not task.done():
                task.cancel()
                cancelled += 1
        self._watch_tasks = {}
        self._confirmed_count = 0
        self._failed_count = 0
        if cancelled:
            self.logger().debug(f"[WATCHER] Stopped, cancelled {cancelled} pending watches")

    async def _watch(self, tx_hash: str):
        try:
            await self._finality_client.wait_for_finality(tx_hash)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed_count += 1
            self.logger().warning(f"[WATCHER] Transaction {MultiTransferLogger.short_hash(tx_hash)} failed: {e}")
            status = TransferStatus.FAILED
        else:
            self._confirmed_count += 1
            self.logger().debug(f"[WATCHER] Transaction {MultiTransferLogger.short_hash(tx_hash)} confirmed")
            status = TransferStatus.SUCCESS
        self._on_confirmation(tx_hash, status)
