"""
ShardVault Shared Module

Common models, wire protocol, errors and crypto shared between the
coordinator, node agents, and clients.
"""

from .models import (
    NodeInfo,
    ThresholdParams,
    PriceInfo,
    EncryptionResult,
    DataRecord,
    TaskState,
    TaskInput,
    TaskRequest,
    PartialResult,
    TaskResult,
)
from .protocol import (
    DataRecordPayload,
    SubmitTaskPayload,
    parse_payload,
)
from .errors import (
    ShardVaultError,
    InvalidInputError,
    InsufficientNodesError,
    UnknownNodeError,
    TaskTimeoutError,
    VerificationFailedError,
    CollaboratorError,
    MalformedResponseError,
)
from .crypto_utils import (
    KeyPair,
    ThresholdCrypto,
    CryptoError,
    generate_keypair,
)
from .wallet import WalletSigner

__all__ = [
    # Models
    "NodeInfo",
    "ThresholdParams",
    "PriceInfo",
    "EncryptionResult",
    "DataRecord",
    "TaskState",
    "TaskInput",
    "TaskRequest",
    "PartialResult",
    "TaskResult",
    # Protocol
    "DataRecordPayload",
    "SubmitTaskPayload",
    "parse_payload",
    # Errors
    "ShardVaultError",
    "InvalidInputError",
    "InsufficientNodesError",
    "UnknownNodeError",
    "TaskTimeoutError",
    "VerificationFailedError",
    "CollaboratorError",
    "MalformedResponseError",
    # Crypto
    "KeyPair",
    "ThresholdCrypto",
    "CryptoError",
    "generate_keypair",
    "WalletSigner",
]
