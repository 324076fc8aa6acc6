"""
ShardVault Upload Orchestrator

Encrypts data for the configured participant nodes and publishes it:
ciphertext to the blob store, shares + nonce + blob locator to the
metadata registry.
"""

from typing import Any, Optional
import structlog

from shared.crypto_utils import ThresholdCrypto
from shared.errors import InsufficientNodesError, InvalidInputError, UnknownNodeError
from shared.models import DataRecord, NodeInfo, PriceInfo
from shared.protocol import DataRecordPayload
from shared.wallet import WalletSigner
from .config import VaultConfig
from .services import BlobStore, MetadataRegistry, NodeDirectory

logger = structlog.get_logger()


class UploadOrchestrator:
    """
    Runs the encrypt-and-publish flow once per publication.

    No step is retried and nothing is rolled back: a registry failure after
    the blob write leaves the blob in place.
    """

    def __init__(
        self,
        config: VaultConfig,
        directory: NodeDirectory,
        blob_store: BlobStore,
        registry: MetadataRegistry,
        crypto: Optional[ThresholdCrypto] = None
    ):
        self.config = config
        self.directory = directory
        self.blob_store = blob_store
        self.registry = registry
        self.crypto = crypto or ThresholdCrypto(threshold=config.threshold.t)

    async def upload(
        self,
        plaintext: bytes,
        tag: Any,
        price_info: Optional[PriceInfo] = None,
        signer: Optional[WalletSigner] = None
    ) -> str:
        """
        Encrypt and publish data.

        Args:
            plaintext: Data to publish, must be non-empty
            tag: Opaque JSON-serializable metadata
            price_info: Price; symbol defaults to the configured label
            signer: Wallet signer for the blob and registry writes

        Returns:
            The registry's data id

        Raises:
            InvalidInputError: If plaintext is empty
            InsufficientNodesError: If the directory cannot cover the node list
        """
        if not plaintext:
            raise InvalidInputError("The data to be uploaded can not be empty")

        price_info = self._normalize_price(price_info)

        nodes = await self.directory.list()
        public_keys = self._ordered_public_keys(nodes)

        result = self.crypto.encrypt(public_keys, plaintext)

        blob_locator = await self.blob_store.put(result.ciphertext, signer=signer)
        logger.info(
            "ciphertext_stored",
            blob_locator=blob_locator,
            size_bytes=len(result.ciphertext)
        )

        record = DataRecord(
            tag=tag,
            price_info=price_info,
            encrypted_shares=result.encrypted_shares,
            nonce=result.nonce,
            blob_locator=blob_locator
        )
        wire = DataRecordPayload.from_record(record).to_wire()
        data_id = await self.registry.register(
            wire["dataTag"],
            wire["price"],
            wire["encSks"],
            wire["nonce"],
            wire["encMsg"],
            signer=signer
        )

        logger.info(
            "data_uploaded",
            data_id=data_id,
            blob_locator=blob_locator,
            shares=len(result.encrypted_shares)
        )
        return data_id

    def _normalize_price(self, price_info: Optional[PriceInfo]) -> PriceInfo:
        price_info = price_info or PriceInfo()
        if not price_info.symbol:
            price_info = price_info.model_copy(update={"symbol": self.config.default_symbol})
        return price_info

    def _ordered_public_keys(self, nodes: list[NodeInfo]) -> list[str]:
        """Public keys in configured node order; fails closed on gaps."""
        required = self.config.node_names
        if len(nodes) < len(required):
            raise InsufficientNodesError(
                f"Node directory lists {len(nodes)} nodes, {len(required)} required"
            )

        by_name = {node.name: node.public_key for node in nodes}
        missing = [name for name in required if not by_name.get(name)]
        if missing:
            logger.error("participant_node_missing", missing=missing)
            raise UnknownNodeError(missing[0])

        return [by_name[name] for name in required]
