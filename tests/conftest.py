"""
Shared fixtures: in-memory fakes of the external services and a small
network of node agents acting as the participant nodes.
"""

import json
from typing import Optional

import pytest

from shared.crypto_utils import generate_keypair
from shared.errors import CollaboratorError
from shared.models import NodeInfo, TaskInput, TaskRequest, generate_id
from shared.protocol import parse_payload
from shared.wallet import WalletSigner
from coordinator.config import VaultConfig
from coordinator.scheduler import VirtualClock
from node_agent.crypto import NodeCrypto
from node_agent.worker import ReencryptionWorker
from client.sdk import ShardVaultClient


class FakeNodeDirectory:
    def __init__(self, nodes: list[NodeInfo]):
        self.nodes = nodes
        self.calls = 0

    async def list(self) -> list[NodeInfo]:
        self.calls += 1
        return list(self.nodes)


class FakeBlobStore:
    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.puts: list[str] = []
        self.gets: list[str] = []

    async def put(self, data: bytes, signer: Optional[WalletSigner] = None) -> str:
        locator = generate_id()
        self.blobs[locator] = bytes(data)
        self.puts.append(locator)
        return locator

    async def get(self, locator: str) -> bytes:
        self.gets.append(locator)
        if locator not in self.blobs:
            raise CollaboratorError("blob not found", 404, "blob_store")
        return self.blobs[locator]


class FakeMetadataRegistry:
    def __init__(self):
        self.records: dict[str, dict] = {}
        self.signers: list[Optional[WalletSigner]] = []
        self.reads: list[str] = []
        self.fail_register: Optional[Exception] = None

    async def register(
        self,
        data_tag: str,
        price: str,
        enc_sks: str,
        nonce: str,
        enc_msg: str,
        signer: Optional[WalletSigner] = None
    ) -> str:
        if self.fail_register:
            raise self.fail_register
        data_id = generate_id()
        self.records[data_id] = {
            "id": data_id,
            "dataTag": data_tag,
            "price": price,
            "encSks": enc_sks,
            "nonce": nonce,
            "encMsg": enc_msg,
        }
        self.signers.append(signer)
        return data_id

    async def get_by_id(self, data_id: str) -> dict:
        self.reads.append(data_id)
        if data_id not in self.records:
            raise CollaboratorError("data not found", 404, "metadata_registry")
        return dict(self.records[data_id])


class FakeTaskLedger:
    """
    Ledger that reports a task as pending for ``pending_polls`` reads.

    With a ``network`` attached, submitted tasks are computed by the
    node agents at submission time.
    """

    def __init__(self, pending_polls: int = 0):
        self.pending_polls = pending_polls
        self.requests: dict[str, TaskRequest] = {}
        self.completed: dict[str, dict] = {}
        self.polls: dict[str, int] = {}
        self.network: Optional["NodeNetwork"] = None

    async def submit(self, request: TaskRequest, signer: Optional[WalletSigner] = None) -> str:
        task_id = generate_id()
        self.requests[task_id] = request
        if self.network is not None:
            self.completed[task_id] = await self.network.compute(task_id, request)
        return task_id

    async def get_completed_by_id(self, task_id: str) -> dict:
        self.polls[task_id] = self.polls.get(task_id, 0) + 1
        if task_id in self.completed and self.polls[task_id] > self.pending_polls:
            return self.completed[task_id]
        return {}

    def total_polls(self, task_id: str) -> int:
        return self.polls.get(task_id, 0)


class NodeNetwork:
    """The participant nodes, each re-encrypting its own share."""

    def __init__(self, config: VaultConfig, registry: FakeMetadataRegistry):
        self.config = config
        self.registry = registry
        self.nodes: dict[str, NodeCrypto] = {}
        for name in config.node_names:
            node_crypto = NodeCrypto(threshold=config.threshold.t)
            node_crypto.use_keypair(generate_keypair())
            self.nodes[name] = node_crypto
        self.verification_error = None
        self.compute_order: Optional[list[str]] = None

    def directory_entries(self) -> list[NodeInfo]:
        return [
            NodeInfo(name=name, public_key=node.public_key)
            for name, node in self.nodes.items()
        ]

    async def compute(self, task_id: str, request: TaskRequest) -> dict:
        task_input = parse_payload(
            request.input_payload.model_dump(by_alias=True), TaskInput
        )
        names = self.compute_order or list(request.participant_nodes)
        results = {}
        for name in names:
            worker = ReencryptionWorker(name, self.nodes[name], self.config)
            results[name] = await worker.process(self.registry, task_input)

        record = {
            "id": task_id,
            "computeNodes": json.dumps(names),
            "result": results,
            "inputData": task_input.model_dump_json(by_alias=True),
        }
        if self.verification_error is not None:
            record["verificationError"] = self.verification_error
        return record


@pytest.fixture
def config() -> VaultConfig:
    return VaultConfig(node_names=["node-1", "node-2", "node-3"])


@pytest.fixture
def registry() -> FakeMetadataRegistry:
    return FakeMetadataRegistry()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def network(config, registry) -> NodeNetwork:
    return NodeNetwork(config, registry)


@pytest.fixture
def directory(network) -> FakeNodeDirectory:
    return FakeNodeDirectory(network.directory_entries())


@pytest.fixture
def ledger(network) -> FakeTaskLedger:
    ledger = FakeTaskLedger()
    ledger.network = network
    return ledger


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def signer() -> WalletSigner:
    return WalletSigner.generate()


@pytest.fixture
def vault(config, directory, blob_store, registry, ledger, clock, signer) -> ShardVaultClient:
    return ShardVaultClient(
        config,
        directory=directory,
        blob_store=blob_store,
        registry=registry,
        ledger=ledger,
        signer=signer,
        clock=clock
    )
