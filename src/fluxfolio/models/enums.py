"""String enums shared across the job and intent pipeline."""

from enum import StrEnum


class JobType(StrEnum):
    CREATE_PORTFOLIO = "create-portfolio"
    BUY_BUNDLE = "buy-bundle"
    REBALANCE = "rebalance"
    WITHDRAW = "withdraw"
    ASSIGN_AGENT = "assign-agent"


class StepStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SigningStandard(StrEnum):
    RAW_ED25519 = "raw_ed25519"
    ERC191 = "erc191"


class IntentStatus(StrEnum):
    PENDING = "PENDING"
    TX_BROADCASTED = "TX_BROADCASTED"
    SETTLED = "SETTLED"
    FINALIZED = "finalized"
    NOT_FOUND_OR_NOT_VALID_ANYMORE = "NOT_FOUND_OR_NOT_VALID_ANYMORE"


class DepositChain(StrEnum):
    SOLANA = "sol:mainnet"
    EVM = "eth:8453"
    BITCOIN = "btc:mainnet"
