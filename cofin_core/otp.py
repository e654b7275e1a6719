"""
One-Time Password Module

Issues numeric codes keyed by transaction id, expires them after the
configured TTL and verifies them. Records accumulate in document["otps"]
and are never deleted.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Callable, Dict, Any, Optional
import logging
import secrets
import string

from .storage import DocumentStoreInterface
from .audit import AuditLog, AuditAction
from .settings import SettingsStore, Purpose
from .phone import normalize_phone
from .errors import (
    NotFoundError, ExpiredError, CodeMismatchError, PurposeDisabledError
)


logger = logging.getLogger(__name__)

TRANSACTION_ID_LENGTH = 12


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_code(length: int) -> str:
    """Draw `length` independent uniform decimal digits"""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_transaction_id() -> str:
    return secrets.token_urlsafe(TRANSACTION_ID_LENGTH)[:TRANSACTION_ID_LENGTH]


@dataclass
class OtpRecord:
    """Stored one-time code"""
    transaction_id: str
    code: str
    phone: str
    purpose: Purpose
    expire_at: datetime
    verified: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expire_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "phone": self.phone,
            "purpose": self.purpose.value,
            "expireAt": self.expire_at.isoformat(),
            "verified": self.verified
        }

    @classmethod
    def from_dict(cls, transaction_id: str, data: Dict[str, Any]) -> 'OtpRecord':
        return cls(
            transaction_id=transaction_id,
            code=data["code"],
            phone=data["phone"],
            purpose=Purpose(data["purpose"]),
            expire_at=datetime.fromisoformat(data["expireAt"]),
            verified=bool(data.get("verified", False))
        )


@dataclass(frozen=True)
class OtpIssue:
    """Result of issuing a code"""
    transaction_id: str
    normalized_phone: str
    code: str


class SmsSender(ABC):
    """Port for delivering OTP messages"""

    @abstractmethod
    def send(self, phone: str, message: str) -> None:
        pass


class LogSmsSender(SmsSender):
    """Writes messages to the log instead of delivering them"""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def send(self, phone: str, message: str) -> None:
        self.log.info("SMS to %s: %s", phone, message)


class OtpService:
    """Issues and verifies one-time codes"""

    def __init__(
        self,
        store: DocumentStoreInterface,
        settings: SettingsStore,
        audit_log: AuditLog,
        sms_sender: Optional[SmsSender] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.settings = settings
        self.audit_log = audit_log
        self.sms_sender = sms_sender or LogSmsSender()
        self.clock = clock

    def issue(self, phone: str, purpose: str) -> OtpIssue:
        """
        Generate and store a code for a phone number.

        Args:
            phone: Phone number as typed by the caller
            purpose: One of "open", "cash", "field"

        Returns:
            OtpIssue with the transaction id, normalized phone and code

        Raises:
            PurposeDisabledError: If OTP is not enabled for the purpose
        """
        try:
            otp_purpose = Purpose(purpose)
        except ValueError:
            raise PurposeDisabledError(f"OTP disabled for {purpose}") from None

        with self.store.transaction() as document:
            otp_config = self.settings.otp_config_of(document)
            if not otp_config.is_enabled(otp_purpose):
                logger.warning("OTP issuance refused, purpose %s disabled", purpose)
                raise PurposeDisabledError(f"OTP disabled for {purpose}")

            record = OtpRecord(
                transaction_id=generate_transaction_id(),
                code=generate_code(otp_config.code_length),
                phone=normalize_phone(otp_config.country_calling_code, phone),
                purpose=otp_purpose,
                expire_at=self.clock() + timedelta(seconds=otp_config.ttl_seconds)
            )
            document.setdefault("otps", {})[record.transaction_id] = record.to_dict()

            self.audit_log.append(document, "system", AuditAction.OTP_SEND, {
                "txnId": record.transaction_id,
                "phone": record.phone,
                "purpose": otp_purpose
            })
            sms_config = self.settings.sms_config_of(document)

        logger.info("OTP %s issued for %s (%s)", record.transaction_id, record.phone, purpose)
        self.sms_sender.send(record.phone, sms_config.render(record.code, purpose))

        return OtpIssue(
            transaction_id=record.transaction_id,
            normalized_phone=record.phone,
            code=record.code
        )

    def verify(self, transaction_id: str, code: str) -> bool:
        """
        Check a submitted code and mark the record verified.

        Verifying again with the same correct code succeeds again.

        Raises:
            NotFoundError: If the transaction id is unknown
            ExpiredError: If the code has expired, whatever its value
            CodeMismatchError: If the code differs from the stored one
        """
        with self.store.transaction() as document:
            data = document.get("otps", {}).get(transaction_id)
            if data is None:
                raise NotFoundError(f"OTP {transaction_id} not found")

            record = OtpRecord.from_dict(transaction_id, data)
            if record.is_expired(self.clock()):
                logger.warning("OTP %s expired", transaction_id)
                raise ExpiredError(f"OTP {transaction_id} expired")
            if record.code != code:
                logger.warning("OTP %s code mismatch", transaction_id)
                raise CodeMismatchError("Incorrect code")

            record.verified = True
            document["otps"][transaction_id] = record.to_dict()
            self.audit_log.append(document, "system", AuditAction.OTP_VERIFY, {
                "txnId": transaction_id
            })

        logger.info("OTP %s verified", transaction_id)
        return True

    def get(self, transaction_id: str) -> Optional[OtpRecord]:
        data = self.store.load().get("otps", {}).get(transaction_id)
        if data is None:
            return None
        return OtpRecord.from_dict(transaction_id, data)
