# =============================================================================
# Transfer Call Shape
# =============================================================================
# Every unit is moved with ERC721 safeTransferFrom(from, to, tokenId)
TRANSFER_FUNCTION_NAME = "safeTransferFrom"

ERC721_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "from", "type": "address"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "tokenId", "type": "uint256"},
        ],
        "name": "safeTransferFrom",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

# Handle recorded for a skipped unit (nothing was broadcast)
EMPTY_TX_HASH = ""

# =============================================================================
# Submission Driver Timing
# =============================================================================
# Delay before submitting the next position, lets the signer finish its own reset
SETTLE_DELAY = 0.05  # seconds
# Delay before re-submitting the same position after retry()
RETRY_DELAY = 0.1  # seconds

# Guard token value when no position has been dispatched
NO_EXECUTED_INDEX = -1

# =============================================================================
# Chain Client
# =============================================================================
CONFIRMATION_TIMEOUT = 120.0  # seconds, same as a manual wait_for_transaction_receipt
RECEIPT_POLL_LATENCY = 1.0  # seconds
RECEIPT_STATUS_SUCCESS = 1
PENDING_BLOCK_IDENTIFIER = "pending"

# =============================================================================
# Display
# =============================================================================
DEFAULT_EXPLORER_URL = "https://etherscan.io"
SHORT_ADDRESS_CHARS = 4
