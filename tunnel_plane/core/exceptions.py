# tunnel_plane/core/exceptions.py
"""
Typed errors raised by the core

Each carries a stable error_code so the HTTP layer can map it to a status
without string matching.
"""

from typing import Optional


class TunnelPlaneError(Exception):
    """Base class for all domain errors"""
    error_code = "TUNNEL_PLANE_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(TunnelPlaneError):
    """Interface or peer does not exist locally"""
    error_code = "NOT_FOUND"


class InvalidKeyFormatError(TunnelPlaneError):
    """Public key is not a 44-char Base64 WireGuard key"""
    error_code = "INVALID_KEY_FORMAT"


class InvalidRequestError(TunnelPlaneError):
    """Input is well-formed but not acceptable (immutable field, bad value)"""
    error_code = "VALIDATION_ERROR"


class InvalidNetworkError(InvalidRequestError):
    """Tunnel subnet or server address has the wrong shape"""
    error_code = "INVALID_NETWORK"


class AddressPoolExhaustedError(TunnelPlaneError):
    """No free tunnel address left in the interface subnet"""
    error_code = "ADDRESS_POOL_EXHAUSTED"


class ConflictError(TunnelPlaneError):
    """Operation would violate a protected invariant"""
    error_code = "CONFLICT"


class RemoteOperationError(TunnelPlaneError):
    """A gateway call failed (connect, login or command-level trap)"""
    error_code = "REMOTE_OPERATION_FAILED"

    def __init__(self, message: str, command: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.command = command
        if command:
            self.details.setdefault("command", command)


class ProtectedInterfaceError(ConflictError):
    """The default interface cannot be deleted"""
    error_code = "PROTECTED_INTERFACE"


class RemoteDriftError(RemoteOperationError):
    """Peer could not be located on the gateway by id or by comment"""
    error_code = "REMOTE_DRIFT"
