"""Database models - import all models here for metadata discovery."""

from logiflex_api.models.cargo import Bid, Cargo
from logiflex_api.models.ettn import DigitalSignature, ETTN
from logiflex_api.models.messaging import Message, Notification
from logiflex_api.models.transaction import RWSMetric, Transaction
from logiflex_api.models.user import SigningCertificate, User

__all__ = [
    "User",
    "SigningCertificate",
    "Cargo",
    "Bid",
    "Transaction",
    "RWSMetric",
    "ETTN",
    "DigitalSignature",
    "Message",
    "Notification",
]
