"""
Multi Transfer Executor

Transfers a list of ERC721 tokens one by one through a single signer.

- Exactly one signing request per queue position, strictly in queue order
- The cursor advances as soon as a transaction hash arrives; confirmation is
  watched in the background so a slow block never stalls the batch
- A signer failure parks the batch at that position until skip() or retry()
- The batch is complete once every position has a terminal record

All state lives on the event loop that calls start_transfer. Signer updates and
confirmation results are applied on that same loop.
"""
import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

from multitransfer.core.utils.async_utils import safe_ensure_future
from multitransfer.logger import MultiTransferLogger
from multitransfer.transfer import transfer_constants as CONSTANTS
from multitransfer.transfer.confirmation_watcher import FinalityClientBase, TransferConfirmationWatcher
from multitransfer.transfer.data_types import (
    ExecutionGuard,
    MultiTransferConfig,
    MultiTransferStates,
    TransferRecord,
    TransferRequest,
    TransferSessionParams,
    TransferStatus,
)
from multitransfer.transfer.transfer_queue import TransferQueue
from multitransfer.transfer.transfer_signer import TransferSignerBase


class MultiTransferExecutor:
    _logger: Optional[MultiTransferLogger] = None

    def __init__(
        self,
        signer: TransferSignerBase,
        finality_client: FinalityClientBase,
        config: Optional[MultiTransferConfig] = None,
    ):
        self._config = config or MultiTransferConfig()
        self._signer = signer
        self._transfer_queue = TransferQueue()
        self._watcher = TransferConfirmationWatcher(finality_client, self._on_confirmation)
        self._guard = ExecutionGuard()
        self._params: Optional[TransferSessionParams] = None
        self._requests: Tuple[TransferRequest, ...] = ()
        self._is_transferring = False
        self._scheduled_submit: Optional[asyncio.Future] = None
        self._update_event = asyncio.Event()
        self._complete_event = asyncio.Event()

        # Statistics
        self._submissions_dispatched = 0
        self._skipped_count = 0
        self._retry_count = 0

        self._signer.add_listener(self._on_signer_update)

    @classmethod
    def logger(cls) -> MultiTransferLogger:
        if cls._logger is None:
            cls._logger = logging.getLogger(MultiTransferLogger.logger_name_for_class(cls))
        return cls._logger

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def config(self) -> MultiTransferConfig:
        return self._config

    @property
    def params(self) -> Optional[TransferSessionParams]:
        return self._params

    @property
    def queue(self) -> List[int]:
        return list(self._transfer_queue.queue)

    @property
    def current_index(self) -> int:
        return self._transfer_queue.current_index

    @property
    def total_count(self) -> int:
        return self._transfer_queue.total_count

    @property
    def current_token_id(self) -> Optional[int]:
        return self._transfer_queue.current_token_id

    @property
    def is_transferring(self) -> bool:
        return self._is_transferring

    @property
    def is_complete(self) -> bool:
        return self._transfer_queue.is_complete

    @property
    def is_pending(self) -> bool:
        """True while the signer is waiting for a signature or broadcast."""
        return self._signer.is_pending

    @property
    def pending_confirmations(self) -> int:
        return self._transfer_queue.pending_confirmations

    @property
    def is_confirming(self) -> bool:
        return self.pending_confirmations > 0

    @property
    def all_transfers_submitted(self) -> bool:
        return self._transfer_queue.all_transfers_submitted

    @property
    def current_hash(self) -> Optional[str]:
        return self._signer.current_hash

    @property
    def completed_transfers(self) -> List[TransferRecord]:
        return self._transfer_queue.records

    @property
    def error(self) -> Optional[Exception]:
        return self._signer.current_error

    @property
    def failed_token_id(self) -> Optional[int]:
        if self.error is not None:
            return self.current_token_id
        return None

    @property
    def state(self) -> MultiTransferStates:
        if self._params is None:
            return MultiTransferStates.IDLE
        if self.is_complete:
            return MultiTransferStates.COMPLETE
        if self._has_error_at_position():
            return MultiTransferStates.ERROR_AT_POSITION
        if self._signer.is_pending or self._guard.is_executing:
            return MultiTransferStates.AWAITING_SIGNATURE
        return MultiTransferStates.SUBMITTED

    @property
    def stats(self) -> dict:
        records = self._transfer_queue.records
        return {
            "total": self.total_count,
            "submitted": self._submissions_dispatched,
            "skipped": self._skipped_count,
            "retried": self._retry_count,
            "succeeded": sum(1 for r in records if r.status == TransferStatus.SUCCESS),
            "failed": sum(1 for r in records if r.status == TransferStatus.FAILED),
            "pending_confirmations": self.pending_confirmations,
            "watching": self._watcher.active_count,
        }

    def to_summary(self) -> dict:
        return {
            "state": self.state.value,
            "contract_address": self._params.contract_address if self._params else None,
            "to": self._params.to if self._params else None,
            "from_address": self._params.from_address if self._params else None,
            "current_index": self.current_index,
            "total_count": self.total_count,
            "is_complete": self.is_complete,
            "error": str(self.error) if self.error is not None else None,
            "failed_token_id": self.failed_token_id,
            "transfers": [record.to_dict() for record in self.completed_transfers],
            "stats": self.stats,
        }

    # ------------------------------------------------------------------
    # Control operations
    # ------------------------------------------------------------------

    def start_transfer(self, contract_address: str, to: str, token_ids: Iterable[int], from_address: str):
        """
        Start a new batch run, replacing whatever state a previous run left behind.

        An empty token list is ignored.

        Raises:
            pydantic.ValidationError: If one of the addresses or token ids is invalid. Nothing
                from the previous run is touched in that case.
        """
        token_ids = list(token_ids)
        if len(token_ids) == 0:
            return
        params = TransferSessionParams(contract_address=contract_address, to=to, from_address=from_address)
        requests = tuple(TransferRequest.from_session(params, token_id) for token_id in token_ids)

        self._cancel_scheduled_submit()
        self._watcher.stop()
        self._guard.clear()
        self._signer.reset()
        self._transfer_queue.load(request.token_id for request in requests)
        self._params = params
        self._requests = requests
        self._is_transferring = True
        self._complete_event.clear()
        self._reset_stats()

        self.logger().info(
            f"[DRIVER] Starting transfer of {len(token_ids)} tokens from {params.contract_address} "
            f"to {params.to}"
        )
        self._notify_update()
        self.submit_next()

    def submit_next(self) -> bool:
        """
        Ask the signer to sign the transfer at the current position.

        Calls that are out of turn are no-ops: no session, queue exhausted, the
        position was already dispatched, a request is in flight, or the signer
        still holds an outcome that has not been consumed.

        Returns:
            True if a signing request was issued
        """
        if self._params is None or not self._is_transferring:
            return False
        if not self._transfer_queue.has_remaining:
            return False
        current_index = self._transfer_queue.current_index
        if self._guard.last_executed_index == current_index or self._guard.is_executing:
            self.logger().debug(f"[DRIVER] Position {current_index} already dispatched, ignoring")
            return False
        if self._signer.is_pending or self._signer.current_hash is not None or self._signer.current_error is not None:
            self.logger().debug(f"[DRIVER] Signer not idle, not dispatching position {current_index}")
            return False

        self._guard.last_executed_index = current_index
        self._guard.is_executing = True

        request = self._requests[current_index]
        token_id = request.token_id
        self.logger().info(
            f"[DRIVER] Requesting signature for token #{token_id} ({current_index + 1}/{self.total_count})"
        )
        self._submissions_dispatched += 1
        self._signer.submit(request)
        self._notify_update()
        return True

    def skip(self):
        """Record the failed position as failed and continue with the next one."""
        if not self._has_error_at_position():
            self.logger().debug("[DRIVER] skip() ignored, no signer error outstanding")
            return

        record = self._transfer_queue.record_and_advance(CONSTANTS.EMPTY_TX_HASH, TransferStatus.FAILED)
        self._guard.release()
        self._skipped_count += 1
        self.logger().info(f"[DRIVER] Skipped token #{record.token_id} after signer error: {self.error}")

        if self._transfer_queue.has_remaining:
            self._signer.reset()
            self._schedule_submit(self._config.settle_delay)
        self._check_complete()
        self._notify_update()

    def retry(self):
        """Clear the signer error and request a signature for the same position again."""
        if not self._has_error_at_position():
            self.logger().debug("[DRIVER] retry() ignored, no signer error outstanding")
            return

        self.logger().info(f"[DRIVER] Retrying token #{self.current_token_id}")
        self._signer.reset()
        self._guard.release()
        self._retry_count += 1
        self._schedule_submit(self._config.retry_delay)
        self._notify_update()

    def reset(self):
        """
        Discard the batch.

        Transactions that were already broadcast stay on the network; only local
        waiting on them is stopped.
        """
        self._cancel_scheduled_submit()
        self._watcher.stop()
        self._transfer_queue.clear()
        self._params = None
        self._requests = ()
        self._is_transferring = False
        self._guard.clear()
        self._signer.reset()
        self._complete_event.clear()
        self._reset_stats()
        self.logger().debug("[DRIVER] Reset")
        self._notify_update()

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    async def wait_for_update(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the next state change.

        Returns:
            False if the timeout expired first
        """
        self._update_event.clear()
        try:
            await asyncio.wait_for(self._update_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_until_complete(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every position has a terminal record.

        Returns:
            False if the timeout expired first
        """
        try:
            await asyncio.wait_for(self._complete_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_signer_update(self, signer: TransferSignerBase):
        if signer.current_hash is not None:
            self._process_new_hash(signer.current_hash)
        elif signer.current_error is not None:
            self.logger().warning(
                f"[DRIVER] Token #{self.current_token_id} not sent: {signer.current_error}. Waiting for retry or skip"
            )
            self._notify_update()

    def _process_new_hash(self, tx_hash: str):
        if not self._is_transferring or not self._transfer_queue.has_remaining:
            return
        if tx_hash in self._guard.processed_hashes:
            self.logger().debug(f"[DRIVER] Handle {MultiTransferLogger.short_hash(tx_hash)} already processed")
            return

        self._guard.processed_hashes.add(tx_hash)
        self._guard.is_executing = False

        record = self._transfer_queue.record_and_advance(tx_hash, TransferStatus.PENDING)
        self.logger().info(
            f"[DRIVER] Token #{record.token_id} submitted as {MultiTransferLogger.short_hash(tx_hash)}"
        )
        self._watcher.watch(tx_hash)

        if self._transfer_queue.has_remaining:
            self._signer.reset()
            self._schedule_submit(self._config.settle_delay)
        self._notify_update()

    def _on_confirmation(self, tx_hash: str, status: TransferStatus):
        if not self._transfer_queue.update_status(tx_hash, status):
            return
        self._check_complete()
        self._notify_update()

    def _has_error_at_position(self) -> bool:
        return self._is_transferring and self._transfer_queue.has_remaining and self.error is not None

    def _check_complete(self):
        if self._transfer_queue.all_transfers_confirmed and self._is_transferring:
            self._is_transferring = False
            stats = self.stats
            self.logger().info(
                f"[DRIVER] Batch complete: {stats['succeeded']} succeeded, {stats['failed']} failed "
                f"of {stats['total']}"
            )
            self._complete_event.set()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule_submit(self, delay: float):
        self._cancel_scheduled_submit()
        self._scheduled_submit = safe_ensure_future(self._delayed_submit(delay))

    async def _delayed_submit(self, delay: float):
        await asyncio.sleep(delay)
        self._scheduled_submit = None
        self.submit_next()

    def _cancel_scheduled_submit(self):
        if self._scheduled_submit is not None and not self._scheduled_submit.done():
            self._scheduled_submit.cancel()
        self._scheduled_submit = None

    def _notify_update(self):
        self._update_event.set()

    def _reset_stats(self):
        self._submissions_dispatched = 0
        self._skipped_count = 0
        self._retry_count = 0
