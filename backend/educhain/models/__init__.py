from educhain.models.institution import Institution, VerificationStatus
from educhain.models.certificate import Certificate
from educhain.models.verification_request import VerificationRequest, RequestStatus
from educhain.models.subscription import Subscription, FREE_TRIAL_PLAN

__all__ = [
    "Institution",
    "VerificationStatus",
    "Certificate",
    "VerificationRequest",
    "RequestStatus",
    "Subscription",
    "FREE_TRIAL_PLAN",
]
