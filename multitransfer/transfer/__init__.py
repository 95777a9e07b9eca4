from multitransfer.transfer.confirmation_watcher import (
    FinalityClientBase,
    TransferConfirmationWatcher,
    Web3FinalityClient,
)
from multitransfer.transfer.data_types import (
    MultiTransferConfig,
    MultiTransferStates,
    TransferRecord,
    TransferRequest,
    TransferSessionParams,
    TransferStatus,
    Web3ConnectionConfig,
)
from multitransfer.transfer.multi_transfer_executor import MultiTransferExecutor
from multitransfer.transfer.transfer_queue import TransferQueue
from multitransfer.transfer.transfer_signer import TransferSignerBase, Web3TransferSigner

__all__ = [
    "FinalityClientBase",
    "MultiTransferConfig",
    "MultiTransferExecutor",
    "MultiTransferStates",
    "TransferConfirmationWatcher",
    "TransferQueue",
    "TransferRecord",
    "TransferRequest",
    "TransferSessionParams",
    "TransferSignerBase",
    "TransferStatus",
    "Web3ConnectionConfig",
    "Web3FinalityClient",
    "Web3TransferSigner",
]
