"""
ShardVault Errors

Error taxonomy shared by the orchestrators, the service clients and the SDK.
"""

from typing import Any, Optional


class ShardVaultError(Exception):
    """Base exception for ShardVault errors."""
    pass


class InvalidInputError(ShardVaultError):
    """Raised when a caller passes unusable input (e.g. empty plaintext)."""
    pass


class InsufficientNodesError(ShardVaultError):
    """Raised when the node directory cannot cover the participant set."""
    pass


class UnknownNodeError(InsufficientNodesError):
    """Raised when a configured node name is missing from the directory."""

    def __init__(self, node_name: str):
        super().__init__(f"Node '{node_name}' is not listed in the node directory")
        self.node_name = node_name


class TaskTimeoutError(ShardVaultError, TimeoutError):
    """Raised when a task does not complete before the polling deadline."""

    def __init__(self, task_id: str, timeout: float):
        super().__init__(f"Task {task_id} did not complete within {timeout}s")
        self.task_id = task_id
        self.timeout = timeout


class VerificationFailedError(ShardVaultError):
    """Raised when the distributed computation reports a verification error."""

    def __init__(self, payload: Any):
        super().__init__(f"Task verification failed: {payload}")
        self.payload = payload


class CollaboratorError(ShardVaultError):
    """Raised when an external service request fails."""

    def __init__(self, message: str, status_code: int = None, service: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.service = service


class MalformedResponseError(ShardVaultError):
    """Raised when a service response does not match the expected schema."""
    pass
