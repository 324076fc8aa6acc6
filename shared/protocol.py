"""
ShardVault Wire Protocol

JSON payloads exchanged with the metadata registry and the task ledger.

Binary fields travel as base64 strings. The registry keeps the original
field names (``dataTag``, ``price``, ``encSks``, ``nonce``, ``encMsg``),
with tag, price and share list stored as JSON-encoded text.
"""

import base64
import binascii
import json
from typing import Any, Optional, TypeVar
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedResponseError
from .models import DataRecord, PriceInfo, TaskRequest, decode_json_field

ModelT = TypeVar("ModelT", bound=BaseModel)


def b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def b64d(data: str) -> bytes:
    """Decode base64, raising MalformedResponseError on bad input."""
    try:
        return base64.b64decode(data.encode("utf-8"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedResponseError(f"Invalid base64 field: {e}") from e


# =============================================================================
# Payload Models
# =============================================================================

class DataRecordPayload(BaseModel):
    """Registry representation of a DataRecord."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    data_tag: Any = Field(default=None, alias="dataTag")
    price: PriceInfo
    enc_sks: list[str] = Field(alias="encSks")
    nonce: str
    enc_msg: str = Field(alias="encMsg")

    @field_validator("data_tag", "price", "enc_sks", mode="before")
    @classmethod
    def _decode_embedded_json(cls, value: Any) -> Any:
        return decode_json_field(value)

    def to_wire(self) -> dict:
        """Body for a registry write: structured fields become JSON text."""
        return {
            "dataTag": json.dumps(self.data_tag),
            "price": self.price.model_dump_json(exclude_none=True),
            "encSks": json.dumps(self.enc_sks),
            "nonce": self.nonce,
            "encMsg": self.enc_msg,
        }

    @classmethod
    def from_record(cls, record: DataRecord) -> "DataRecordPayload":
        return cls(
            id=record.data_id,
            data_tag=record.tag,
            price=record.price_info,
            enc_sks=[b64e(share) for share in record.encrypted_shares],
            nonce=b64e(record.nonce),
            enc_msg=record.blob_locator,
        )

    def to_record(self) -> DataRecord:
        return DataRecord(
            data_id=self.id,
            tag=self.data_tag,
            price_info=self.price,
            encrypted_shares=[b64d(share) for share in self.enc_sks],
            nonce=b64d(self.nonce),
            blob_locator=self.enc_msg,
        )


class SubmitTaskPayload(BaseModel):
    """Task ledger submission body."""
    model_config = ConfigDict(populate_by_name=True)

    task_type: str = Field(alias="taskType")
    data_id: str = Field(alias="dataId")
    input_data: str = Field(alias="inputData")  # JSON text
    compute_limit: str = Field(alias="computeLimit")
    memory_limit: str = Field(alias="memoryLimit")
    compute_nodes: list[str] = Field(alias="computeNodes")

    @classmethod
    def from_request(cls, request: TaskRequest) -> "SubmitTaskPayload":
        return cls(
            task_type=request.task_type,
            data_id=request.data_id,
            input_data=request.input_payload.model_dump_json(by_alias=True),
            compute_limit=request.compute_limit,
            memory_limit=request.memory_limit,
            compute_nodes=list(request.participant_nodes),
        )


# =============================================================================
# Helper Functions
# =============================================================================

def parse_payload(data: Any, payload_class: type[ModelT], source: str = "response") -> ModelT:
    """
    Parse a decoded JSON value into the expected model.

    Args:
        data: Decoded JSON (or a JSON string)
        payload_class: The Pydantic model class for the payload
        source: Name used in the error message

    Returns:
        Parsed payload instance

    Raises:
        MalformedResponseError: If the payload doesn't match the schema
    """
    try:
        if isinstance(data, (str, bytes)):
            return payload_class.model_validate_json(data)
        return payload_class.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Malformed {source}: {e.error_count()} validation error(s): {e}"
        ) from e
