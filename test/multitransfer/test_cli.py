"""
Unit tests for the multitransfer CLI and its batch driver.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from multitransfer.cli import cli, run_batch
from multitransfer.transfer.data_types import MultiTransferConfig, TransferStatus
from multitransfer.transfer.multi_transfer_executor import MultiTransferExecutor
from multitransfer.transfer.test_support.mock_clients import MockFinalityClient, MockTransferSigner, run_until_idle

CONTRACT = "0x" + "11" * 20
RECIPIENT = "0x" + "22" * 20
SENDER = "0x" + "33" * 20
PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


class TestRunBatch(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.signer = MockTransferSigner()
        self.finality_client = MockFinalityClient()
        self.executor = MultiTransferExecutor(
            self.signer,
            self.finality_client,
            MultiTransferConfig(settle_delay=0, retry_delay=0),
        )

    async def asyncTearDown(self):
        self.executor.reset()

    def run_batch(self, token_ids, **kwargs) -> asyncio.Future:
        return asyncio.ensure_future(
            run_batch(self.executor, CONTRACT, RECIPIENT, token_ids, SENDER, **kwargs)
        )

    async def test_skip_policy(self):
        task = self.run_batch([1, 2], on_error="skip")
        await run_until_idle()

        self.signer.reject()
        await run_until_idle()
        self.signer.approve(tx_hash(2))
        await run_until_idle()
        self.finality_client.confirm(tx_hash(2))

        summary = await asyncio.wait_for(task, timeout=1)
        self.assertFalse(summary["aborted"])
        self.assertEqual(
            [(t["token_id"], t["status"]) for t in summary["transfers"]],
            [(1, TransferStatus.FAILED.value), (2, TransferStatus.SUCCESS.value)],
        )

    async def test_retry_policy_then_skip(self):
        task = self.run_batch([1], on_error="retry", max_retries=1)
        await run_until_idle()

        self.signer.reject()
        await run_until_idle()
        self.assertEqual(self.signer.submitted_token_ids, [1, 1])

        self.signer.reject()
        summary = await asyncio.wait_for(task, timeout=1)

        self.assertEqual(self.signer.submitted_token_ids, [1, 1])
        self.assertEqual(summary["transfers"], [{"token_id": 1, "tx_hash": "", "status": "failed"}])

    async def test_retry_policy_recovers(self):
        task = self.run_batch([1], on_error="retry", max_retries=2)
        await run_until_idle()

        self.signer.reject()
        await run_until_idle()
        self.signer.approve(tx_hash(1))
        await run_until_idle()
        self.finality_client.confirm(tx_hash(1))

        summary = await asyncio.wait_for(task, timeout=1)
        self.assertEqual(summary["transfers"][0]["status"], "success")

    async def test_abort_policy(self):
        task = self.run_batch([1, 2], on_error="abort")
        await run_until_idle()

        self.signer.reject()
        summary = await asyncio.wait_for(task, timeout=1)

        self.assertTrue(summary["aborted"])
        self.assertEqual(summary["failed_token_id"], 1)
        self.assertIsNotNone(summary["error"])
        self.assertFalse(self.executor.is_transferring)
        self.assertEqual(self.signer.submitted_token_ids, [1])


class TestSendCommand(unittest.TestCase):

    def setUp(self):
        self.runner = CliRunner()
        self.env = {"MULTITRANSFER_PRIVATE_KEY": PRIVATE_KEY, "MULTITRANSFER_RPC_URL": "http://localhost:8545"}
        patcher = patch("multitransfer.cli.init_logging")
        patcher.start()
        self.addCleanup(patcher.stop)

    def invoke(self, *args):
        return self.runner.invoke(
            cli,
            ["send", "--contract", CONTRACT, "--to", RECIPIENT, *args],
            env=self.env,
        )

    def test_invalid_token_ids(self):
        result = self.invoke("--token-ids", "1,abc")
        self.assertEqual(result.exit_code, 2)
        self.assertIn("Invalid token id", result.output)

    def test_empty_token_ids(self):
        result = self.invoke("--token-ids", ",")
        self.assertEqual(result.exit_code, 2)

    def test_invalid_recipient(self):
        result = self.runner.invoke(
            cli,
            ["send", "--contract", CONTRACT, "--to", "0x1234", "--token-ids", "1"],
            env=self.env,
        )
        self.assertEqual(result.exit_code, 2)
        self.assertIn("Invalid address", result.output)

    @patch("multitransfer.cli.run_batch", new_callable=AsyncMock)
    @patch("multitransfer.cli.Web3FinalityClient")
    @patch("multitransfer.cli.Web3TransferSigner")
    def test_successful_run(self, signer_cls: MagicMock, finality_cls: MagicMock, run_batch_mock: AsyncMock):
        signer_cls.return_value.address = SENDER
        run_batch_mock.return_value = {
            "aborted": False,
            "total_count": 2,
            "failed_token_id": None,
            "error": None,
            "transfers": [
                {"token_id": 1, "tx_hash": tx_hash(1), "status": "success"},
                {"token_id": 2, "tx_hash": tx_hash(2), "status": "success"},
            ],
        }

        result = self.invoke("--token-ids", "1-2", "--explorer-url", "https://basescan.org")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn(f"https://basescan.org/tx/{tx_hash(1)}", result.output)
        self.assertIn("2/2 transfers succeeded", result.output)
        args = run_batch_mock.await_args
        self.assertEqual(args.args[3], [1, 2])
        self.assertEqual(args.args[4], SENDER)
        self.assertEqual(args.kwargs["on_error"], "skip")

    @patch("multitransfer.cli.run_batch", new_callable=AsyncMock)
    @patch("multitransfer.cli.Web3FinalityClient")
    @patch("multitransfer.cli.Web3TransferSigner")
    def test_failed_transfer_exits_non_zero(self, signer_cls: MagicMock, finality_cls: MagicMock,
                                            run_batch_mock: AsyncMock):
        signer_cls.return_value.address = SENDER
        run_batch_mock.return_value = {
            "aborted": False,
            "total_count": 1,
            "failed_token_id": None,
            "error": None,
            "transfers": [{"token_id": 1, "tx_hash": "", "status": "failed"}],
        }

        result = self.invoke("--token-ids", "1")

        self.assertEqual(result.exit_code, 1)
        self.assertIn("not broadcast", result.output)
        self.assertIn("0/1 transfers succeeded", result.output)


if __name__ == "__main__":
    unittest.main()
