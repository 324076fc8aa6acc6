"""
ShardVault Service Interfaces

Request/response contracts of the external collaborators. The HTTP clients
in ``client.services`` implement them; tests use in-memory fakes.
"""

from typing import Any, Optional, Protocol

from shared.models import NodeInfo, TaskRequest
from shared.wallet import WalletSigner


class NodeDirectory(Protocol):
    async def list(self) -> list[NodeInfo]:
        ...


class BlobStore(Protocol):
    async def put(self, data: bytes, signer: Optional[WalletSigner] = None) -> str:
        ...

    async def get(self, locator: str) -> bytes:
        ...


class MetadataRegistry(Protocol):
    async def register(
        self,
        data_tag: str,
        price: str,
        enc_sks: str,
        nonce: str,
        enc_msg: str,
        signer: Optional[WalletSigner] = None
    ) -> str:
        ...

    async def get_by_id(self, data_id: str) -> dict[str, Any]:
        ...


class TaskLedger(Protocol):
    async def submit(self, request: TaskRequest, signer: Optional[WalletSigner] = None) -> str:
        ...

    async def get_completed_by_id(self, task_id: str) -> dict[str, Any]:
        """Completed task record, or an empty mapping while pending."""
        ...
