"""
ShardVault Client

Python SDK, service clients and CLI for a ShardVault deployment.
"""

from .sdk import ShardVaultClient, ShardVaultClientSync
from shared.errors import ShardVaultError

__all__ = ["ShardVaultClient", "ShardVaultClientSync", "ShardVaultError"]
__version__ = "0.1.0"
