"""
EduChain - Error Taxonomy

Ledger errors never reach the HTTP layer: the reconciliation engine converts
them into a recorded ``blockchain_error`` plus a SyncOutcome. Store and
workflow errors propagate as request failures with their ``status_code``.
"""

from fastapi import status


class EduChainError(Exception):
    """Base class for all application errors."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.__class__.__name__


# =========================================================================
# LEDGER
# =========================================================================

class LedgerError(EduChainError):
    """Ledger call failed."""
    status_code = status.HTTP_502_BAD_GATEWAY


class LedgerUnavailable(LedgerError):
    """No ledger credential or connection."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class LedgerTimeout(LedgerUnavailable):
    """Ledger call exceeded its time bound."""
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class LedgerConflict(LedgerError):
    """Operation already performed on-chain."""
    pass


class LedgerRejected(LedgerError):
    """On-chain precondition failed."""
    pass


# =========================================================================
# STORE / WORKFLOW
# =========================================================================

class StoreNotFound(EduChainError):
    """Entity not found."""
    status_code = status.HTTP_404_NOT_FOUND


class AuthorizationMismatch(EduChainError):
    """Wallet address does not match the expected owner."""
    status_code = status.HTTP_403_FORBIDDEN


class PreconditionFailed(EduChainError):
    """Operation not allowed in the entity's current state."""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidRequest(EduChainError):
    """Request failed validation."""
    status_code = status.HTTP_400_BAD_REQUEST


class DuplicateCertificate(EduChainError):
    """Certificate already issued for this student and course."""
    status_code = status.HTTP_409_CONFLICT


class ContentUploadFailure(EduChainError):
    """Content store rejected or failed the upload."""
    status_code = status.HTTP_502_BAD_GATEWAY


class IssuanceForbidden(EduChainError):
    """Institution may not issue certificates."""
    status_code = status.HTTP_403_FORBIDDEN


class DuplicateInstitution(EduChainError):
    """Institution with this email, wallet or registration number exists."""
    status_code = status.HTTP_409_CONFLICT
