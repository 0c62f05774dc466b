"""
Error types raised while building, hashing and signing Safe user operations
"""

from typing import Any, Dict, Optional


class ValidationError(ValueError):
    """Raised when an argument is malformed or out of range"""


class AbstractionKitError(RuntimeError):
    """Base class for data and dependency failures, carries a code and diagnostic context"""

    def __init__(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class BadDataError(AbstractionKitError):
    """Raised when calldata or a multisend payload can't be decoded"""

    def __init__(self, message: str, data: Optional[bytes] = None) -> None:
        context = {}
        if data is not None:
            context["data"] = "0x" + bytes(data).hex()
        super().__init__("BAD_DATA", message, context)


class DependencyError(AbstractionKitError):
    """Raised when a value is neither overridden nor obtainable from a provider"""

    def __init__(self, message: str) -> None:
        super().__init__("BAD_DATA", message)


class BundlerError(AbstractionKitError):
    """Raised when a bundler or node JSON-RPC call returns an error"""

    def __init__(self, message: str, rpc_code: Optional[int] = None, data: Any = None) -> None:
        super().__init__("BUNDLER_ERROR", message, {"rpc_code": rpc_code, "data": data})
        self.rpc_code = rpc_code
