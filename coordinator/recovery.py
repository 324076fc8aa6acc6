"""
ShardVault Recovery Orchestrator

Combines a completed task's partial results with the stored ciphertext to
reconstruct the plaintext.
"""

from dataclasses import dataclass
from typing import Callable, Optional
import structlog

from shared.crypto_utils import KeyPair, ThresholdCrypto
from shared.errors import MalformedResponseError, VerificationFailedError
from shared.models import DataRecord, TaskResult
from shared.protocol import DataRecordPayload, b64d, parse_payload
from .config import VaultConfig
from .services import BlobStore, MetadataRegistry

logger = structlog.get_logger()


@dataclass(frozen=True)
class ShareSelection:
    """Re-encrypted shares picked for reconstruction, with their indices."""
    node_names: list[str]
    shares: list[bytes]
    indices: list[int]  # 1-based node positions


def first_t_by_node_order(task: TaskResult, config: VaultConfig) -> ShareSelection:
    """
    Pick the first ``t`` compute nodes in ``compute_nodes`` order.

    The index of each share is the node's 1-based position in the configured
    participant list, which is the x-coordinate its share was issued at.
    """
    t = config.threshold.t
    if len(task.compute_nodes) < t:
        raise MalformedResponseError(
            f"Task {task.id} reports {len(task.compute_nodes)} compute nodes, {t} required"
        )

    names = task.compute_nodes[:t]
    shares = []
    indices = []
    for name in names:
        position = config.node_position(name)
        if position is None:
            raise MalformedResponseError(f"Task {task.id} names unknown compute node '{name}'")
        partial = task.result.get(name)
        if partial is None:
            raise MalformedResponseError(f"Task {task.id} has no result for node '{name}'")
        shares.append(b64d(partial.reenc_sk))
        indices.append(position)

    return ShareSelection(node_names=names, shares=shares, indices=indices)


SelectionStrategy = Callable[[TaskResult, VaultConfig], ShareSelection]


class RecoveryOrchestrator:
    """
    Reconstructs plaintext from a completed task.

    Stateless: recovering the same task twice reads the registry and blob
    store again and returns identical bytes.
    """

    def __init__(
        self,
        config: VaultConfig,
        registry: MetadataRegistry,
        blob_store: BlobStore,
        crypto: Optional[ThresholdCrypto] = None,
        select_shares: SelectionStrategy = first_t_by_node_order
    ):
        self.config = config
        self.registry = registry
        self.blob_store = blob_store
        self.crypto = crypto or ThresholdCrypto(threshold=config.threshold.t)
        self.select_shares = select_shares

    async def fetch_record(self, data_id: str) -> DataRecord:
        """Look up and decode a published data record."""
        raw = await self.registry.get_by_id(data_id)
        payload = parse_payload(raw, DataRecordPayload, source="data record")
        return payload.to_record()

    async def recover(self, task: TaskResult, consumer_keypair: KeyPair) -> bytes:
        """
        Recover plaintext from a completed task.

        Args:
            task: Completed task result
            consumer_keypair: Key pair whose public key the task was submitted with

        Returns:
            Decrypted plaintext

        Raises:
            VerificationFailedError: If the nodes reported a verification error
            MalformedResponseError: If the task or record cannot be decoded
        """
        if task.verification_error:
            logger.warning(
                "task_verification_failed",
                task_id=task.id,
                error=str(task.verification_error)
            )
            raise VerificationFailedError(task.verification_error)

        if task.input_data is None:
            raise MalformedResponseError(f"Task {task.id} carries no input data")

        selection = self.select_shares(task, self.config)

        record = await self.fetch_record(task.input_data.data_id)
        ciphertext = await self.blob_store.get(record.blob_locator)

        plaintext = self.crypto.decrypt(
            selection.shares,
            consumer_keypair,
            record.nonce,
            ciphertext,
            selection.indices
        )

        logger.info(
            "data_recovered",
            task_id=task.id,
            data_id=task.input_data.data_id,
            nodes=selection.node_names,
            size_bytes=len(plaintext)
        )
        return plaintext
