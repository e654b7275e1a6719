"""
Account Opening Module

Approval workflow for account-opening requests:

    PENDING --approve--> AWAITING_OTP --confirm--> ACTIVE
    PENDING/AWAITING_OTP --reject--> REJECTED (dropped)

Requests in PENDING and AWAITING_OTP both live in the "pending" collection
of the document; confirmation moves a request to the "active" collection.
An id is never in both collections.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import logging
import secrets

from .storage import DocumentStoreInterface, Document
from .audit import AuditLog, AuditAction
from .settings import SettingsStore
from .phone import normalize_phone
from .errors import MissingFieldError, NotFoundError, OtpNotVerifiedError


logger = logging.getLogger(__name__)

ACCOUNT_ID_LENGTH = 10


class AccountStatus(Enum):
    """Account request lifecycle states"""
    PENDING = "PENDING"            # Created, waiting for approval
    AWAITING_OTP = "AWAITING_OTP"  # Approved, waiting for OTP confirmation
    ACTIVE = "ACTIVE"              # Confirmed and opened
    REJECTED = "REJECTED"          # Dropped by an approver


@dataclass
class AccountRequest:
    """Account-opening request"""
    id: str
    name: str
    phone: str
    account_type: str
    status: AccountStatus
    created_by: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nom": self.name,
            "tel": self.phone,
            "type": self.account_type,
            "status": self.status.value,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccountRequest':
        return cls(
            id=data["id"],
            name=data["nom"],
            phone=data["tel"],
            account_type=data["type"],
            status=AccountStatus(data["status"]),
            created_by=data.get("createdBy"),
            created_at=datetime.fromisoformat(data["createdAt"])
        )


def _find(collection: List[Dict[str, Any]], account_id: str) -> int:
    for index, data in enumerate(collection):
        if data.get("id") == account_id:
            return index
    return -1


class AccountWorkflow:
    """
    Drives account requests through approval and OTP confirmation
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        settings: SettingsStore,
        audit_log: AuditLog
    ):
        self.store = store
        self.settings = settings
        self.audit_log = audit_log

    def _pending(self, document: Document) -> List[Dict[str, Any]]:
        return document.setdefault("accounts", {}).setdefault("pending", [])

    def _active(self, document: Document) -> List[Dict[str, Any]]:
        return document.setdefault("accounts", {}).setdefault("active", [])

    def _require_pending(self, document: Document, account_id: str) -> Tuple[int, AccountRequest]:
        index = _find(self._pending(document), account_id)
        if index == -1:
            raise NotFoundError(f"Account request {account_id} not found")
        return index, AccountRequest.from_dict(self._pending(document)[index])

    def open(
        self,
        name: str,
        phone: str,
        account_type: str,
        created_by: Optional[str] = None
    ) -> AccountRequest:
        """
        Create a PENDING account request

        Args:
            name: Customer name
            phone: Customer phone, normalized with the configured country code
            account_type: Requested account type (savings, tontine, ...)
            created_by: User filing the request

        Returns:
            Created AccountRequest

        Raises:
            MissingFieldError: If name, phone or account_type is empty
        """
        for field_name, value in (("name", name), ("phone", phone), ("account_type", account_type)):
            if not value:
                raise MissingFieldError(field_name)

        with self.store.transaction() as document:
            otp_config = self.settings.otp_config_of(document)
            request = AccountRequest(
                id=secrets.token_urlsafe(ACCOUNT_ID_LENGTH)[:ACCOUNT_ID_LENGTH],
                name=name,
                phone=normalize_phone(otp_config.country_calling_code, phone),
                account_type=account_type,
                status=AccountStatus.PENDING,
                created_by=created_by,
                created_at=datetime.now(timezone.utc)
            )
            self._pending(document).append(request.to_dict())
            self.audit_log.append(
                document, created_by or "unknown", AuditAction.ACCOUNT_OPEN_CREATED,
                {"acc": request.to_dict()}
            )

        logger.info("Account request %s created by %s", request.id, created_by)
        return request

    def approve(self, account_id: str, approved_by: Optional[str] = None) -> AccountRequest:
        """
        Move a request to AWAITING_OTP.

        Does not issue the OTP; the caller requests one with purpose "open".
        Approving a request that already awaits its OTP leaves it there.

        Raises:
            NotFoundError: If the id is not in the pending collection
        """
        with self.store.transaction() as document:
            index, request = self._require_pending(document, account_id)
            request.status = AccountStatus.AWAITING_OTP
            self._pending(document)[index] = request.to_dict()
            self.audit_log.append(
                document, approved_by or "chef", AuditAction.ACCOUNT_APPROVED_WAITING_OTP,
                {"accId": account_id}
            )

        logger.info("Account request %s approved, awaiting OTP", account_id)
        return request

    def confirm(
        self,
        account_id: str,
        otp_transaction_id: str,
        code: str,
        confirmed_by: Optional[str] = None
    ) -> AccountRequest:
        """
        Activate a request once its OTP has been verified.

        The OTP record must exist, hold the supplied code and be verified.

        Raises:
            NotFoundError: If the id is not in the pending collection
            OtpNotVerifiedError: If any of the three OTP conditions fails
        """
        with self.store.transaction() as document:
            index, request = self._require_pending(document, account_id)

            otp = document.get("otps", {}).get(otp_transaction_id)
            if not otp or otp.get("code") != code or not otp.get("verified"):
                logger.warning("Confirmation of %s refused, OTP not verified", account_id)
                raise OtpNotVerifiedError("OTP not verified")

            request.status = AccountStatus.ACTIVE
            del self._pending(document)[index]
            self._active(document).append(request.to_dict())
            self.audit_log.append(
                document, confirmed_by or "chef", AuditAction.ACCOUNT_OPEN_CONFIRMED,
                {"accId": account_id}
            )

        logger.info("Account %s activated", account_id)
        return request

    def reject(
        self,
        account_id: str,
        rejected_by: Optional[str] = None,
        reason: Optional[str] = None
    ) -> None:
        """
        Drop a request permanently.

        Raises:
            NotFoundError: If the id is not in the pending collection
        """
        with self.store.transaction() as document:
            index, _ = self._require_pending(document, account_id)
            del self._pending(document)[index]
            self.audit_log.append(
                document, rejected_by or "chef", AuditAction.ACCOUNT_OPEN_REJECTED,
                {"accId": account_id, "reason": reason}
            )

        logger.info("Account request %s rejected: %s", account_id, reason)

    def get(self, account_id: str) -> Optional[AccountRequest]:
        """Look up a request in the pending then the active collection"""
        document = self.store.load()
        for collection in (self._pending(document), self._active(document)):
            index = _find(collection, account_id)
            if index != -1:
                return AccountRequest.from_dict(collection[index])
        return None

    def list_requests(self, status: Optional[AccountStatus] = None) -> Dict[str, List[AccountRequest]]:
        """
        List requests by collection.

        PENDING lists the whole pending collection (AWAITING_OTP included),
        ACTIVE lists the active collection, anything else lists both.
        """
        document = self.store.load()
        pending = [AccountRequest.from_dict(d) for d in self._pending(document)]
        active = [AccountRequest.from_dict(d) for d in self._active(document)]

        if status == AccountStatus.ACTIVE:
            return {"active": active}
        if status in (AccountStatus.PENDING, AccountStatus.AWAITING_OTP):
            return {"pending": pending}
        return {"pending": pending, "active": active}
