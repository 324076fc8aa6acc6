"""
ShardVault Node Re-encryption Worker

Produces a node's partial result for a re-encryption task: the node's
share of the data key, re-sealed for the requesting consumer.
"""

import structlog

from shared.errors import MalformedResponseError, UnknownNodeError
from shared.models import DataRecord, PartialResult, TaskInput
from shared.protocol import DataRecordPayload, b64e, parse_payload
from coordinator.config import VaultConfig
from coordinator.services import MetadataRegistry
from .crypto import NodeCrypto

logger = structlog.get_logger()


class ReencryptionWorker:
    """Computes partial results on behalf of one named node."""

    def __init__(self, node_name: str, node_crypto: NodeCrypto, config: VaultConfig):
        position = config.node_position(node_name)
        if position is None:
            raise UnknownNodeError(node_name)
        self.node_name = node_name
        self.position = position
        self.node_crypto = node_crypto

    def partial_result(self, record: DataRecord, task_input: TaskInput) -> str:
        """
        Re-seal this node's share of ``record`` for the task's consumer.

        Returns:
            JSON text of the PartialResult, as stored in the ledger
        """
        if len(record.encrypted_shares) < self.position:
            raise MalformedResponseError(
                f"Record has {len(record.encrypted_shares)} shares, "
                f"node '{self.node_name}' expects position {self.position}"
            )

        share = record.encrypted_shares[self.position - 1]
        reencrypted = self.node_crypto.reencrypt_share(share, task_input.consumer_pk)

        logger.info(
            "share_reencrypted",
            node=self.node_name,
            data_id=task_input.data_id,
            consumer=task_input.consumer_pk[:16] + "..."
        )
        return PartialResult(reenc_sk=b64e(reencrypted)).model_dump_json()

    async def process(self, registry: MetadataRegistry, task_input: TaskInput) -> str:
        """Fetch the task's data record and compute this node's partial result."""
        raw = await registry.get_by_id(task_input.data_id)
        record = parse_payload(raw, DataRecordPayload, source="data record").to_record()
        return self.partial_result(record, task_input)
