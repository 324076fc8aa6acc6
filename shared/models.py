"""
ShardVault Pydantic Models

Shared data models for nodes, published data records and compute tasks.
"""

import json
import uuid
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def decode_json_field(value: Any) -> Any:
    """Accept values the ledger/registry ship as JSON-encoded strings."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


# =============================================================================
# Node Models
# =============================================================================

class NodeInfo(BaseModel):
    """A node as listed by the node directory."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    public_key: str = Field(alias="publickey")


class ThresholdParams(BaseModel):
    """(t, n) threshold parameters of a deployment."""
    t: int = 2
    n: int = 3

    @model_validator(mode="after")
    def _check_bounds(self) -> "ThresholdParams":
        if not 1 <= self.t <= self.n:
            raise ValueError(f"threshold must satisfy 1 <= t <= n, got t={self.t}, n={self.n}")
        return self


# =============================================================================
# Data Models
# =============================================================================

class PriceInfo(BaseModel):
    """Price attached to a publication. Extra keys are kept as-is."""
    model_config = ConfigDict(extra="allow")

    price: str = "0"
    symbol: Optional[str] = None


class EncryptionResult(BaseModel):
    """Output of the threshold encrypt step."""
    ciphertext: bytes
    encrypted_shares: list[bytes]  # one per node, in node order
    nonce: bytes


class DataRecord(BaseModel):
    """Published data record as held by the metadata registry."""
    model_config = ConfigDict(frozen=True)

    data_id: Optional[str] = None
    tag: Any = None
    price_info: PriceInfo
    encrypted_shares: list[bytes]
    nonce: bytes
    blob_locator: str


# =============================================================================
# Task Models
# =============================================================================

class TaskState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


class TaskInput(BaseModel):
    """Input payload of a re-encryption task: threshold params + data/consumer."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    t: int
    n: int
    data_id: str = Field(alias="dataId")
    consumer_pk: str = Field(alias="consumerPk")


class TaskRequest(BaseModel):
    """A computation request as submitted to the task ledger."""
    model_config = ConfigDict(frozen=True)

    task_type: str
    data_id: str
    input_payload: TaskInput
    compute_limit: str
    memory_limit: str
    participant_nodes: list[str]


class PartialResult(BaseModel):
    """One node's contribution: its share re-sealed for the consumer."""
    model_config = ConfigDict(extra="allow")

    reenc_sk: str  # base64


class TaskResult(BaseModel):
    """A completed task record reported by the task ledger."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    verification_error: Optional[Any] = Field(default=None, alias="verificationError")
    compute_nodes: list[str] = Field(default_factory=list, alias="computeNodes")
    result: dict[str, PartialResult] = Field(default_factory=dict)
    input_data: Optional[TaskInput] = Field(default=None, alias="inputData")

    @model_validator(mode="before")
    @classmethod
    def _skip_results_on_verification_error(cls, data: Any) -> Any:
        # Failed nodes report error text in place of partial results
        if isinstance(data, dict) and (data.get("verificationError") or data.get("verification_error")):
            dropped = {"result", "computeNodes", "compute_nodes", "inputData", "input_data"}
            return {key: value for key, value in data.items() if key not in dropped}
        return data

    @field_validator("compute_nodes", "input_data", mode="before")
    @classmethod
    def _decode_embedded_json(cls, value: Any) -> Any:
        return decode_json_field(value)

    @field_validator("result", mode="before")
    @classmethod
    def _decode_partial_results(cls, value: Any) -> Any:
        value = decode_json_field(value)
        if isinstance(value, dict):
            return {name: decode_json_field(entry) for name, entry in value.items()}
        return value

    @field_validator("id", mode="before")
    @classmethod
    def _id_not_empty(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not value:
            raise ValueError("task id must not be empty")
        return value
