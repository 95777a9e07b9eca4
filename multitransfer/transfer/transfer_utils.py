from enum import Enum
from typing import List, Optional

from web3 import Web3

from multitransfer.transfer import transfer_constants as CONSTANTS


class TransferError(Exception):
    """Base class for transfer failures."""
    pass


class SignerBusyError(TransferError):
    """Raised when a signer is asked to sign while a request is still pending."""
    pass


class TransferRejectedError(TransferError):
    """Raised when the wallet declines or cannot sign a transfer."""
    pass


class TransactionRevertedError(TransferError):
    """Raised when a broadcast transaction is mined with a failed status."""
    pass


class ConfirmationTimeoutError(TransferError):
    """Raised when the chain client gives up waiting for a receipt."""
    pass


class TransactionStep(Enum):
    SIGNING = "signing"
    BROADCASTING = "broadcasting"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"


def shorten_address(address: Optional[str], chars: int = CONSTANTS.SHORT_ADDRESS_CHARS) -> str:
    """Shorten an address or hash to ``0xabcd...wxyz`` form."""
    if not address:
        return ""
    return f"{address[:chars + 2]}...{address[-chars:]}"


def is_valid_address(address: str) -> bool:
    return Web3.is_address(address)


def to_checksum_address(address: str) -> Optional[str]:
    """Return the EIP-55 checksum form of an address, or None if it is not an address."""
    try:
        return Web3.to_checksum_address(address)
    except (ValueError, TypeError):
        return None


def get_explorer_url(tx_hash: str, explorer_base_url: Optional[str] = None) -> str:
    base_url = (explorer_base_url or CONSTANTS.DEFAULT_EXPLORER_URL).rstrip("/")
    return f"{base_url}/tx/{tx_hash}"


def get_transaction_step(tx_hash: Optional[str], is_confirming: bool, is_success: bool) -> TransactionStep:
    """
    Map a single transaction's progress to the step shown to the operator.

    Args:
        tx_hash: Hash of the broadcast transaction, if any
        is_confirming: True while the receipt is being awaited
        is_success: True once the receipt reported success

    Returns:
        The furthest step the transaction has reached
    """
    if is_success:
        return TransactionStep.CONFIRMED
    if is_confirming:
        return TransactionStep.CONFIRMING
    if tx_hash:
        return TransactionStep.BROADCASTING
    return TransactionStep.SIGNING


def parse_token_ids(value: str) -> List[int]:
    """
    Parse operator input such as ``"1, 2, 5-7"`` into an ordered list of token ids.

    Duplicates are dropped, keeping the first occurrence.

    Raises:
        ValueError: If a part is not a non-negative integer or an ascending range
    """
    token_ids: List[int] = []
    seen = set()
    for part in value.replace(" ", "").split(","):
        if not part:
            continue
        if "-" in part:
            start_str, _, end_str = part.partition("-")
            if not start_str.isdigit() or not end_str.isdigit():
                raise ValueError(f"Invalid token id range: {part}")
            start, end = int(start_str), int(end_str)
            if end < start:
                raise ValueError(f"Token id range must be ascending: {part}")
            candidates = range(start, end + 1)
        else:
            if not part.isdigit():
                raise ValueError(f"Invalid token id: {part}")
            candidates = [int(part)]
        for token_id in candidates:
            if token_id not in seen:
                seen.add(token_id)
                token_ids.append(token_id)
    return token_ids
