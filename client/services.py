"""
ShardVault Service Clients

Async HTTP clients for the node directory, blob store, metadata registry
and task ledger.
"""

import json
from typing import Any, Optional
from urllib.parse import quote
import httpx
import structlog

from shared.errors import CollaboratorError, MalformedResponseError
from shared.models import NodeInfo, TaskRequest, decode_json_field
from shared.protocol import SubmitTaskPayload, parse_payload
from shared.wallet import WalletSigner
from coordinator.config import VaultConfig

logger = structlog.get_logger()


class ServiceClient:
    """
    Base client for one external service.

    Usage:
        async with BlobStoreClient("http://localhost:8102") as blobs:
            locator = await blobs.put(b"...")
    """

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ServiceClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport
            )

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client."""
        if not self._client:
            raise RuntimeError("Client not connected. Call connect() first.")
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Any] = None,
        content: Optional[bytes] = None,
        signer: Optional[WalletSigner] = None
    ) -> httpx.Response:
        """Send a request, signing the body when a signer is given."""
        headers = {}
        body = content
        if json_data is not None:
            body = json.dumps(json_data).encode("utf-8")
            headers["Content-Type"] = "application/json"
        elif content is not None:
            headers["Content-Type"] = "application/octet-stream"
        if signer:
            headers.update(signer.headers(body or b""))

        try:
            response = await self.client.request(method, path, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(
                "service_request_failed",
                service=self.service_name,
                path=path,
                error=str(e)
            )
            raise CollaboratorError(
                f"{self.service_name} request failed: {e}",
                service=self.service_name
            ) from e

        if response.status_code >= 400:
            try:
                error_detail = response.json().get("detail", response.text)
            except (ValueError, AttributeError):
                error_detail = response.text
            raise CollaboratorError(error_detail, response.status_code, self.service_name)

        return response

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON body; string bodies holding JSON are decoded again."""
        try:
            return decode_json_field(response.json())
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.service_name} returned invalid JSON: {e}"
            ) from e

    def _field(self, data: Any, key: str) -> str:
        if not isinstance(data, dict) or not data.get(key):
            raise MalformedResponseError(f"{self.service_name} response is missing '{key}'")
        return str(data[key])


class NodeDirectoryClient(ServiceClient):
    """Resolves node names to their current public keys."""

    service_name = "node_directory"

    async def list(self) -> list[NodeInfo]:
        data = self._json(await self._request("GET", "/nodes"))
        if not isinstance(data, list):
            raise MalformedResponseError("node_directory must return a list of nodes")
        return [parse_payload(entry, NodeInfo, source="node entry") for entry in data]


class BlobStoreClient(ServiceClient):
    """Durable content store for ciphertexts."""

    service_name = "blob_store"

    async def put(self, data: bytes, signer: Optional[WalletSigner] = None) -> str:
        response = await self._request("POST", "/blobs", content=data, signer=signer)
        return self._field(self._json(response), "locator")

    async def get(self, locator: str) -> bytes:
        response = await self._request("GET", f"/blobs/{quote(locator, safe='')}")
        return response.content


class MetadataRegistryClient(ServiceClient):
    """Ledger of published data records."""

    service_name = "metadata_registry"

    async def register(
        self,
        data_tag: str,
        price: str,
        enc_sks: str,
        nonce: str,
        enc_msg: str,
        signer: Optional[WalletSigner] = None
    ) -> str:
        body = {
            "dataTag": data_tag,
            "price": price,
            "encSks": enc_sks,
            "nonce": nonce,
            "encMsg": enc_msg,
        }
        response = await self._request("POST", "/data", json_data=body, signer=signer)
        return self._field(self._json(response), "dataId")

    async def get_by_id(self, data_id: str) -> dict[str, Any]:
        data = self._json(await self._request("GET", f"/data/{quote(data_id, safe='')}"))
        if not isinstance(data, dict):
            raise MalformedResponseError("metadata_registry must return a record object")
        return data


class TaskLedgerClient(ServiceClient):
    """Ledger of compute tasks and their completion records."""

    service_name = "task_ledger"

    async def submit(self, request: TaskRequest, signer: Optional[WalletSigner] = None) -> str:
        body = SubmitTaskPayload.from_request(request).model_dump(by_alias=True)
        response = await self._request("POST", "/tasks", json_data=body, signer=signer)
        return self._field(self._json(response), "taskId")

    async def get_completed_by_id(self, task_id: str) -> dict[str, Any]:
        path = f"/tasks/{quote(task_id, safe='')}/completed"
        data = self._json(await self._request("GET", path))
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise MalformedResponseError("task_ledger must return a task object")
        return data


class ServiceClients:
    """The four service clients of a deployment, opened and closed together."""

    def __init__(
        self,
        config: VaultConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        urls = config.services
        timeout = config.request_timeout
        self.directory = NodeDirectoryClient(urls.node_directory, timeout, transport)
        self.blob_store = BlobStoreClient(urls.blob_store, timeout, transport)
        self.registry = MetadataRegistryClient(urls.metadata_registry, timeout, transport)
        self.ledger = TaskLedgerClient(urls.task_ledger, timeout, transport)

    @property
    def all(self) -> list[ServiceClient]:
        return [self.directory, self.blob_store, self.registry, self.ledger]

    async def __aenter__(self) -> "ServiceClients":
        for service in self.all:
            await service.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        for service in self.all:
            await service.disconnect()
