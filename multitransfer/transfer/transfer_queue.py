"""
Transfer Queue

Bookkeeping for one batch run: the ordered token ids, the submission cursor and
the ordered transfer records.

Invariants:
- 0 <= current_index <= total_count
- For every position i < current_index a record exists at records[i]

Records are only appended together with a cursor advance, so the second
invariant holds by construction. None of the operations here fail.
"""
from typing import Iterable, List, Optional, Tuple

from multitransfer.transfer.data_types import TransferRecord, TransferStatus


class TransferQueue:

    def __init__(self):
        self._queue: Tuple[int, ...] = ()
        self._current_index = 0
        self._records: List[TransferRecord] = []

    def load(self, token_ids: Iterable[int]):
        """Replace the queue wholesale and rewind the cursor."""
        self._queue = tuple(token_ids)
        self._current_index = 0
        self._records = []

    def clear(self):
        self.load(())

    @property
    def queue(self) -> Tuple[int, ...]:
        return self._queue

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def total_count(self) -> int:
        return len(self._queue)

    @property
    def current_token_id(self) -> Optional[int]:
        if self._current_index < len(self._queue):
            return self._queue[self._current_index]
        return None

    @property
    def has_remaining(self) -> bool:
        return self._current_index < len(self._queue)

    @property
    def records(self) -> List[TransferRecord]:
        return [record.model_copy() for record in self._records]

    @property
    def all_transfers_submitted(self) -> bool:
        return self.total_count > 0 and self._current_index >= self.total_count

    @property
    def all_transfers_confirmed(self) -> bool:
        return (
            self.total_count > 0
            and len(self._records) == self.total_count
            and all(record.is_terminal for record in self._records)
        )

    @property
    def is_complete(self) -> bool:
        return self.all_transfers_confirmed

    @property
    def pending_confirmations(self) -> int:
        return sum(1 for record in self._records if record.status == TransferStatus.PENDING)

    def record_and_advance(self, tx_hash: str, status: TransferStatus) -> Optional[TransferRecord]:
        """
        Append the record for the current position and move the cursor forward.

        Returns:
            The new record, or None if the queue is exhausted
        """
        token_id = self.current_token_id
        if token_id is None:
            return None
        record = TransferRecord(token_id=token_id, tx_hash=tx_hash, status=status)
        self._records.append(record)
        self._current_index += 1
        return record

    def update_status(self, tx_hash: str, status: TransferStatus) -> bool:
        """
        Apply a terminal status to the record with the given handle.

        The first terminal status applied to a record wins; later updates, updates
        for unknown handles and updates with an empty handle are no-ops.

        Returns:
            True if a record changed
        """
        if not tx_hash or not status.is_terminal:
            return False
        for record in self._records:
            if record.tx_hash == tx_hash:
                if record.is_terminal:
                    return False
                record.status = status
                return True
        return False
