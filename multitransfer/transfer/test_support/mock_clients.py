import asyncio
from typing import Dict, List, Optional

from multitransfer.transfer.confirmation_watcher import FinalityClientBase
from multitransfer.transfer.data_types import TransferRequest
from multitransfer.transfer.transfer_signer import TransferSignerBase
from multitransfer.transfer.transfer_utils import TransactionRevertedError, TransferRejectedError


class MockTransferSigner(TransferSignerBase):
    """
    Signer whose requests stay pending until the test approves or rejects them.

    Every call to submit() is recorded in ``requests`` together with a future that
    approve()/reject() resolve.
    """

    def __init__(self):
        super().__init__()
        self.requests: List[TransferRequest] = []
        self._outcomes: List[asyncio.Future] = []

    def submit(self, request: TransferRequest):
        super().submit(request)
        self.requests.append(request)
        self._outcomes.append(asyncio.get_running_loop().create_future())

    @property
    def submitted_token_ids(self) -> List[int]:
        return [request.token_id for request in self.requests]

    def approve(self, tx_hash: str, index: int = -1):
        self._outcomes[index].set_result(tx_hash)

    def reject(self, error: Optional[Exception] = None, index: int = -1):
        self._outcomes[index].set_exception(error or TransferRejectedError("User rejected the request"))

    def emit_update(self):
        """Notify listeners again without a state change, as a re-rendered caller would."""
        self._notify_listeners()

    async def _sign_and_send(self, request: TransferRequest) -> str:
        for position in range(len(self.requests) - 1, -1, -1):
            if self.requests[position] is request:
                return await self._outcomes[position]
        raise RuntimeError(f"Unknown request for token #{request.token_id}")


class MockFinalityClient(FinalityClientBase):
    """Finality client whose waits resolve when the test calls confirm() or fail()."""

    def __init__(self):
        self.waited_hashes: List[str] = []
        self._outcomes: Dict[str, asyncio.Future] = {}

    def _outcome(self, tx_hash: str) -> asyncio.Future:
        if tx_hash not in self._outcomes or self._outcomes[tx_hash].cancelled():
            self._outcomes[tx_hash] = asyncio.get_running_loop().create_future()
        return self._outcomes[tx_hash]

    def confirm(self, tx_hash: str):
        self._outcome(tx_hash).set_result(None)

    def fail(self, tx_hash: str, error: Optional[Exception] = None):
        self._outcome(tx_hash).set_exception(error or TransactionRevertedError(f"{tx_hash} reverted"))

    async def wait_for_finality(self, tx_hash: str):
        self.waited_hashes.append(tx_hash)
        await self._outcome(tx_hash)


async def run_until_idle(iterations: int = 20):
    """Let scheduled callbacks and zero-delay timers run."""
    for _ in range(iterations):
        await asyncio.sleep(0)
