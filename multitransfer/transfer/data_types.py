from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

from multitransfer.transfer import transfer_constants as CONSTANTS
from multitransfer.transfer.transfer_utils import to_checksum_address


class TransferStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransferStatus.PENDING


class MultiTransferStates(Enum):
    """
    Named states of a batch run.

    Only skip/retry leave ERROR_AT_POSITION, and only a new handle (or the last
    confirmation) leaves AWAITING_SIGNATURE / SUBMITTED.
    """
    IDLE = "IDLE"                              # No session
    AWAITING_SIGNATURE = "AWAITING_SIGNATURE"  # Signer asked for queue[current_index]
    SUBMITTED = "SUBMITTED"                    # Handle received, next position not yet dispatched
    ERROR_AT_POSITION = "ERROR_AT_POSITION"    # Signer failed for queue[current_index]
    COMPLETE = "COMPLETE"                      # Every position has a terminal record


def _checksum(value: str) -> str:
    checksummed = to_checksum_address(value)
    if checksummed is None:
        raise ValueError(f"Invalid address: {value}")
    return checksummed


class TransferSessionParams(BaseModel):
    """Contract and parties of one batch run. Fixed from start_transfer until reset."""
    contract_address: str
    to: str
    from_address: str

    model_config = ConfigDict(frozen=True)

    @field_validator("contract_address", "to", "from_address", mode="before")
    @classmethod
    def validate_address(cls, v):
        return _checksum(v)


class TransferRequest(BaseModel):
    """A single signing request handed to the signer."""
    contract_address: str
    to: str
    from_address: str
    token_id: int = Field(ge=0)
    function_name: str = CONSTANTS.TRANSFER_FUNCTION_NAME

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_session(cls, params: TransferSessionParams, token_id: int) -> "TransferRequest":
        return cls(
            contract_address=params.contract_address,
            to=params.to,
            from_address=params.from_address,
            token_id=token_id,
        )


class TransferRecord(BaseModel):
    """
    Outcome of one queue position.

    tx_hash is empty for a skipped position since nothing was broadcast.
    """
    token_id: int
    tx_hash: str
    status: TransferStatus = TransferStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict:
        return {
            "token_id": self.token_id,
            "tx_hash": self.tx_hash,
            "status": self.status.value,
        }


class MultiTransferConfig(BaseModel):
    """Timing of the submission driver."""
    settle_delay: float = Field(default=CONSTANTS.SETTLE_DELAY, ge=0)
    retry_delay: float = Field(default=CONSTANTS.RETRY_DELAY, ge=0)


class Web3ConnectionConfig(BaseModel):
    """Connection settings shared by the web3 signer and finality client."""
    rpc_url: str
    chain_id: Optional[int] = None
    confirmation_timeout: float = Field(default=CONSTANTS.CONFIRMATION_TIMEOUT, gt=0)
    poll_latency: float = Field(default=CONSTANTS.RECEIPT_POLL_LATENCY, gt=0)
    gas_limit: Optional[int] = Field(default=None, gt=0)

    @field_validator("rpc_url", mode="before")
    @classmethod
    def validate_rpc_url(cls, v):
        if not isinstance(v, str) or not v.startswith(("http://", "https://")):
            raise ValueError(f"rpc_url must be an http(s) URL, got {v!r}")
        return v


@dataclass
class ExecutionGuard:
    """Process-local re-entrancy guards of the submission driver."""
    processed_hashes: Set[str] = field(default_factory=set)
    last_executed_index: int = CONSTANTS.NO_EXECUTED_INDEX
    is_executing: bool = False

    def release(self):
        """Allow the driver to dispatch again, keeping the processed handles."""
        self.last_executed_index = CONSTANTS.NO_EXECUTED_INDEX
        self.is_executing = False

    def clear(self):
        self.processed_hashes = set()
        self.release()
