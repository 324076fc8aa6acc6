"""
ShardVault Python SDK

Public API for publishing threshold-encrypted data and recovering it
through a distributed re-encryption task.
"""

import asyncio
from typing import Any, Optional
import httpx

from shared.crypto_utils import KeyPair, ThresholdCrypto
from shared.models import NodeInfo, PriceInfo, TaskResult
from shared.wallet import WalletSigner
from coordinator.config import VaultConfig
from coordinator.recovery import RecoveryOrchestrator
from coordinator.scheduler import Clock
from coordinator.services import BlobStore, MetadataRegistry, NodeDirectory, TaskLedger
from coordinator.task_orchestrator import TaskOrchestrator
from coordinator.upload_orchestrator import UploadOrchestrator
from .services import ServiceClients


class ShardVaultClient:
    """
    Async client for a ShardVault deployment.

    Usage:
        async with ShardVaultClient.from_config(config, signer=wallet) as vault:
            data_id = await vault.upload_data(b"secret", {"name": "report"})
            keypair = await vault.generate_key()
            plaintext = await vault.submit_task_and_get_result(data_id, keypair)
    """

    def __init__(
        self,
        config: VaultConfig,
        directory: NodeDirectory,
        blob_store: BlobStore,
        registry: MetadataRegistry,
        ledger: TaskLedger,
        signer: Optional[WalletSigner] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config
        self.signer = signer
        self.crypto = ThresholdCrypto(threshold=config.threshold.t)
        self.uploader = UploadOrchestrator(config, directory, blob_store, registry, self.crypto)
        self.tasks = TaskOrchestrator(config, ledger, clock=clock)
        self.recovery = RecoveryOrchestrator(config, registry, blob_store, self.crypto)
        self._services: Optional[ServiceClients] = None

    @classmethod
    def from_config(
        cls,
        config: VaultConfig,
        signer: Optional[WalletSigner] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "ShardVaultClient":
        """Build a client talking to the services over HTTP."""
        services = ServiceClients(config, transport=transport)
        client = cls(
            config,
            directory=services.directory,
            blob_store=services.blob_store,
            registry=services.registry,
            ledger=services.ledger,
            signer=signer
        )
        client._services = services
        return client

    async def __aenter__(self) -> "ShardVaultClient":
        """Async context manager entry."""
        if self._services:
            await self._services.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._services:
            await self._services.__aexit__(exc_type, exc_val, exc_tb)

    async def upload_data(
        self,
        data: bytes,
        data_tag: Any,
        price_info: Optional[PriceInfo] = None
    ) -> str:
        """
        Encrypt data and publish it.

        Args:
            data: Plain data to encrypt and upload
            data_tag: Data meta info
            price_info: Price and symbol of the data

        Returns:
            The uploaded data id
        """
        return await self.uploader.upload(data, data_tag, price_info, signer=self.signer)

    async def list_nodes(self) -> list[NodeInfo]:
        """Get the nodes currently listed by the node directory."""
        return await self.uploader.directory.list()

    async def generate_key(self) -> KeyPair:
        """Generate a consumer key pair for encrypt/decrypt."""
        return self.crypto.keygen()

    async def submit_task(self, data_id: str, consumer_public_key: str) -> str:
        """
        Submit a re-encryption task.

        Args:
            data_id: The data id
            consumer_public_key: The consumer's public key from generate_key()

        Returns:
            The submitted task id
        """
        return await self.tasks.submit(data_id, consumer_public_key, signer=self.signer)

    async def get_task(self, task_id: str, timeout: Optional[float] = None) -> TaskResult:
        """Wait for a task to complete and return its raw result."""
        return await self.tasks.await_completion(task_id, timeout=timeout)

    async def get_result(
        self,
        task_id: str,
        consumer_keypair: KeyPair,
        timeout: Optional[float] = None
    ) -> bytes:
        """
        Wait for a task and decrypt its result.

        Args:
            task_id: The task id
            consumer_keypair: Key pair whose public key the task was submitted with
            timeout: Seconds to wait (default from config)

        Returns:
            The plaintext data
        """
        task = await self.get_task(task_id, timeout=timeout)
        return await self.recovery.recover(task, consumer_keypair)

    async def submit_task_and_get_result(
        self,
        data_id: str,
        consumer_keypair: KeyPair,
        timeout: Optional[float] = None
    ) -> bytes:
        """Submit a task and get its result. Combines submit_task and get_result."""
        task_id = await self.submit_task(data_id, consumer_keypair.public_key_b64)
        return await self.get_result(task_id, consumer_keypair, timeout=timeout)


# Synchronous wrapper for simple usage
class ShardVaultClientSync:
    """
    Synchronous wrapper for ShardVaultClient.

    For use in non-async contexts.
    """

    def __init__(
        self,
        config: VaultConfig,
        signer: Optional[WalletSigner] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._client = ShardVaultClient.from_config(config, signer=signer, transport=transport)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected = False

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def _run(self, coro):
        return self._get_loop().run_until_complete(coro)

    def _call(self, coro):
        if not self._connected:
            self.connect()
        return self._run(coro)

    def __enter__(self) -> "ShardVaultClientSync":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def connect(self) -> None:
        if not self._connected:
            self._run(self._client.__aenter__())
            self._connected = True

    def disconnect(self) -> None:
        if self._connected:
            self._run(self._client.__aexit__(None, None, None))
            self._connected = False
        if self._loop is not None and not self._loop.is_closed():
            self._loop.close()

    def upload_data(self, data: bytes, data_tag: Any, price_info: Optional[PriceInfo] = None) -> str:
        return self._call(self._client.upload_data(data, data_tag, price_info))

    def list_nodes(self) -> list[NodeInfo]:
        return self._call(self._client.list_nodes())

    def generate_key(self) -> KeyPair:
        return self._run(self._client.generate_key())

    def submit_task(self, data_id: str, consumer_public_key: str) -> str:
        return self._call(self._client.submit_task(data_id, consumer_public_key))

    def get_result(self, task_id: str, consumer_keypair: KeyPair, timeout: Optional[float] = None) -> bytes:
        return self._call(self._client.get_result(task_id, consumer_keypair, timeout))

    def submit_task_and_get_result(
        self,
        data_id: str,
        consumer_keypair: KeyPair,
        timeout: Optional[float] = None
    ) -> bytes:
        return self._call(self._client.submit_task_and_get_result(data_id, consumer_keypair, timeout))
