"""
JSON-RPC error taxonomy.

Every error that reaches a client is an RPCError carrying a (code, message, data)
triple. Protocol errors use the standard JSON-RPC codes; sponsorship refusals use
stable codes in the server range so clients can branch on them.
"""

from typing import Any, Dict, Optional


class RPCErrorCode:
    """Standard and domain error codes"""

    # Protocol
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Sponsorship refusals
    INSUFFICIENT_GAS = -32001
    ACCOUNT_DISABLED = -32002
    FREQUENT_REQUEST = -32003
    ACCOUNT_LOOKUP_FAILED = -32004

    # Generic handler failure (an operation raised something that is not an RPCError)
    HANDLER_ERROR = METHOD_NOT_FOUND


class RPCError(Exception):
    """Error forwarded verbatim to the JSON-RPC client."""

    code: int = RPCErrorCode.INTERNAL_ERROR
    default_message: str = "Internal error"

    def __init__(
        self,
        message: Optional[str] = None,
        data: Optional[Any] = None,
        code: Optional[int] = None,
    ) -> None:
        self.message = message if message is not None else self.default_message
        self.data = data
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }


class ParseError(RPCError):
    code = RPCErrorCode.PARSE_ERROR
    default_message = "Parse error"


class InvalidRequest(RPCError):
    code = RPCErrorCode.INVALID_REQUEST
    default_message = "Invalid Request"


class MethodNotFound(RPCError):
    code = RPCErrorCode.METHOD_NOT_FOUND
    default_message = "Method not found"


class InvalidParams(RPCError):
    code = RPCErrorCode.INVALID_PARAMS
    default_message = "Invalid params"


class InternalError(RPCError):
    code = RPCErrorCode.INTERNAL_ERROR
    default_message = "Internal error"


class InsufficientGas(RPCError):
    code = RPCErrorCode.INSUFFICIENT_GAS
    default_message = "insufficient gas"


class AccountDisabled(RPCError):
    code = RPCErrorCode.ACCOUNT_DISABLED
    default_message = "account disabled"


class FrequentRequest(RPCError):
    code = RPCErrorCode.FREQUENT_REQUEST
    default_message = "frequent requests"


class AccountLookupFailed(RPCError):
    code = RPCErrorCode.ACCOUNT_LOOKUP_FAILED
    default_message = "account lookup failed"


class CollaboratorError(Exception):
    """Failure of an external collaborator (chain node, account store)."""


class ChainClientError(CollaboratorError):
    pass


class AccountStoreError(CollaboratorError):
    pass


class StaleAccountError(AccountStoreError):
    """Conditional save lost against a concurrent writer."""
