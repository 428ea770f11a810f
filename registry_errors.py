"""
Registry Errors

Exception hierarchy shared by the registry client and the multi-registry
manager. Client-level errors describe one HTTP exchange; manager-level
errors describe the outcome of a fan-out across all connected registries.
"""

from typing import Optional


class RegistryError(Exception):
    """Base exception for registry operations"""


class TransportError(RegistryError):
    """Network failure before a response was received"""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class HTTPError(RegistryError):
    """Registry answered with a non-2xx status"""

    def __init__(self, status: int, reason: str = "", url: Optional[str] = None):
        message = f"API request failed: {status} {reason}".rstrip()
        super().__init__(message)
        self.status = status
        self.reason = reason
        self.url = url


class ProtocolError(RegistryError):
    """Expected header or field missing or malformed"""


class NotFoundInAnyRegistry(RegistryError):
    """Every connected registry failed the lookup"""

    def __init__(self, operation: str, name: str):
        super().__init__(f"{operation}: {name} not found in any connected registry")
        self.operation = operation
        self.name = name


class PartialDeleteFailure(RegistryError):
    """Some, but not all, tags of a repository were deleted"""

    def __init__(self, attempted: int, succeeded: int):
        super().__init__(f"Deleted {succeeded}/{attempted} tags")
        self.attempted = attempted
        self.succeeded = succeeded
