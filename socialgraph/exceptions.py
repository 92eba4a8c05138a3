"""
Error taxonomy for the social graph core.

Validation and guard errors reach the caller unchanged; StorageError is
opaque and safe to retry. Uniqueness conflicts are never raised: the
idempotent primitives return the existing record instead.
"""


class SocialGraphError(Exception):
    """Base class for every error the graph core raises"""
    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidArgumentError(SocialGraphError):
    """Raised for malformed input: non-integer ids, self pairs, bad paging"""
    code = "bad_request"


class NotFoundError(SocialGraphError):
    """Raised when the target user does not exist"""
    code = "not_found"

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class ForbiddenError(SocialGraphError):
    """Raised when a block or privacy gate denies access"""
    code = "forbidden"


class StorageError(SocialGraphError):
    """Raised when the storage layer fails; details stay in the logs"""
    code = "storage_unavailable"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__("Storage temporarily unavailable")
