"""
Unit tests for TransferQueue.
"""
import unittest

from multitransfer.transfer.data_types import TransferStatus
from multitransfer.transfer.transfer_queue import TransferQueue

TX_HASH_1 = "0x" + "a1" * 32
TX_HASH_2 = "0x" + "b2" * 32


class TestTransferQueueViews(unittest.TestCase):
    """Tests for the derived views of an unstarted and a loaded queue."""

    def test_empty_queue(self):
        transfer_queue = TransferQueue()
        self.assertEqual(transfer_queue.total_count, 0)
        self.assertEqual(transfer_queue.current_index, 0)
        self.assertIsNone(transfer_queue.current_token_id)
        self.assertFalse(transfer_queue.all_transfers_submitted)
        self.assertFalse(transfer_queue.all_transfers_confirmed)
        self.assertFalse(transfer_queue.is_complete)
        self.assertEqual(transfer_queue.pending_confirmations, 0)

    def test_load_sets_queue_and_rewinds(self):
        transfer_queue = TransferQueue()
        transfer_queue.load([7, 8, 9])
        transfer_queue.record_and_advance(TX_HASH_1, TransferStatus.PENDING)

        transfer_queue.load([4, 5])

        self.assertEqual(transfer_queue.queue, (4, 5))
        self.assertEqual(transfer_queue.current_index, 0)
        self.assertEqual(transfer_queue.current_token_id, 4)
        self.assertEqual(transfer_queue.records, [])

    def test_records_returns_copy(self):
        transfer_queue = TransferQueue()
        transfer_queue.load([1])
        transfer_queue.records.append("garbage")
        self.assertEqual(transfer_queue.records, [])


class TestTransferQueueProgress(unittest.TestCase):
    """Tests for record_and_advance and the submitted/confirmed views."""

    def setUp(self):
        self.transfer_queue = TransferQueue()
        self.transfer_queue.load([1, 2])

    def test_record_and_advance_keeps_queue_order(self):
        first = self.transfer_queue.record_and_advance(TX_HASH_1, TransferStatus.PENDING)
        second = self.transfer_queue.record_and_advance("", TransferStatus.FAILED)

        self.assertEqual(first.token_id, 1)
        self.assertEqual(second.token_id, 2)
        self.assertEqual([r.token_id for r in self.transfer_queue.records], [1, 2])
        self.assertEqual(self.transfer_queue.current_index, 2)
        self.assertTrue(self.transfer_queue.all_transfers_submitted)

    def test_record_and_advance_past_end_is_noop(self):
        self.transfer_queue.record_and_advance(TX_HASH_1, TransferStatus.PENDING)
        self.transfer_queue.record_and_advance(TX_HASH_2, TransferStatus.PENDING)

        self.assertIsNone(self.transfer_queue.record_and_advance("0xdead", TransferStatus.PENDING))
        self.assertEqual(self.transfer_queue.current_index, 2)
        self.assertEqual(len(self.transfer_queue.records), 2)

    def test_all_submitted_is_not_all_confirmed(self):
        self.transfer_queue.record_and_advance(TX_HASH_1, TransferStatus.PENDING)
        self.transfer_queue.record_and_advance(TX_HASH_2, TransferStatus.PENDING)

        self.assertTrue(self.transfer_queue.all_transfers_submitted)
        self.assertFalse(self.transfer_queue.all_transfers_confirmed)
        self.assertEqual(self.transfer_queue.pending_confirmations, 2)

    def test_complete_when_every_record_terminal(self):
        self.transfer_queue.record_and_advance(TX_HASH_1, TransferStatus.PENDING)
        self.transfer_queue.record_and_advance("", TransferStatus.FAILED)
        self.assertFalse(self.transfer_queue.is_complete)

        self.transfer_queue.update_status(TX_HASH_1, TransferStatus.SUCCESS)

        self.assertTrue(self.transfer_queue.is_complete)
        self.assertEqual(self.transfer_queue.pending_confirmations, 0)


class TestTransferQueueUpdateStatus(unittest.TestCase):
    """Tests for keyed, first-applied-wins status updates."""

    def setUp(self):
        self.transfer_queue = TransferQueue()
        self.transfer_queue.load([1, 2])
        self.transfer_queue.record_and_advance(TX_HASH_1, TransferStatus.PENDING)
        self.transfer_queue.record_and_advance(TX_HASH_2, TransferStatus.PENDING)

    def test_update_targets_matching_record_only(self):
        self.assertTrue(self.transfer_queue.update_status(TX_HASH_2, TransferStatus.SUCCESS))
        statuses = [r.status for r in self.transfer_queue.records]
        self.assertEqual(statuses, [TransferStatus.PENDING, TransferStatus.SUCCESS])

    def test_failure_then_success_keeps_failure(self):
        self.assertTrue(self.transfer_queue.update_status(TX_HASH_1, TransferStatus.FAILED))
        self.assertFalse(self.transfer_queue.update_status(TX_HASH_1, TransferStatus.SUCCESS))
        self.assertEqual(self.transfer_queue.records[0].status, TransferStatus.FAILED)

    def test_success_then_failure_keeps_success(self):
        self.assertTrue(self.transfer_queue.update_status(TX_HASH_1, TransferStatus.SUCCESS))
        self.assertFalse(self.transfer_queue.update_status(TX_HASH_1, TransferStatus.FAILED))
        self.assertEqual(self.transfer_queue.records[0].status, TransferStatus.SUCCESS)

    def test_unknown_or_empty_hash_is_noop(self):
        self.assertFalse(self.transfer_queue.update_status("0xunknown", TransferStatus.SUCCESS))
        self.assertFalse(self.transfer_queue.update_status("", TransferStatus.SUCCESS))

    def test_pending_is_not_applied(self):
        self.transfer_queue.update_status(TX_HASH_1, TransferStatus.FAILED)
        self.assertFalse(self.transfer_queue.update_status(TX_HASH_1, TransferStatus.PENDING))
        self.assertEqual(self.transfer_queue.records[0].status, TransferStatus.FAILED)

    def test_records_cannot_bypass_first_applied_status(self):
        self.transfer_queue.records[0].status = TransferStatus.SUCCESS
        self.assertEqual(self.transfer_queue.records[0].status, TransferStatus.PENDING)

        self.assertTrue(self.transfer_queue.update_status(TX_HASH_1, TransferStatus.FAILED))
        self.assertEqual(self.transfer_queue.records[0].status, TransferStatus.FAILED)


if __name__ == "__main__":
    unittest.main()
