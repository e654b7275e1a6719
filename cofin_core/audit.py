"""
Audit Trail Module

Append-only, hash-chained audit log kept inside the document. Every
state-changing action in the back office is recorded here, newest first.
"""

import hashlib
import json
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal

from .storage import DocumentStoreInterface, Document


class AuditAction(Enum):
    """Tags of audited actions"""
    # Account opening
    ACCOUNT_OPEN_CREATED = "account_open_created"
    ACCOUNT_APPROVED_WAITING_OTP = "account_approved_waiting_otp"
    ACCOUNT_OPEN_CONFIRMED = "account_open_confirmed"
    ACCOUNT_OPEN_REJECTED = "account_open_rejected"

    # OTP
    OTP_SEND = "otp_send"
    OTP_VERIFY = "otp_verify"

    # Operations
    OPERATION_RECORDED = "operation_recorded"

    # Settings
    SETTINGS_OTP_UPDATED = "settings_otp_updated"
    SETTINGS_SMS_UPDATED = "settings_sms_updated"

    # Users
    USER_LOGIN = "user_login"


def _json_safe(value: Any) -> Any:
    """Convert a details value to a JSON-serializable form"""
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, (datetime, date)):
        return value.isoformat()
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


@dataclass
class AuditEntry:
    """
    Immutable audit entry with hash chaining for tamper detection
    """
    at: str
    user: str
    action: AuditAction
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""
    current_hash: str = ""

    def __post_init__(self):
        self.details = _json_safe(self.details or {})

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this entry
        Hash includes all fields except current_hash
        """
        hash_data = {
            'at': self.at,
            'user': self.user,
            'action': self.action.value,
            'details': self.details,
            'previous_hash': self.previous_hash
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'at': self.at,
            'user': self.user,
            'action': self.action.value,
            'details': self.details,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        return cls(
            at=data['at'],
            user=data['user'],
            action=AuditAction(data['action']),
            details=data.get('details') or {},
            previous_hash=data.get('previous_hash', ""),
            current_hash=data.get('current_hash', "")
        )


class AuditLog:
    """
    Newest-first audit log stored under document["audit"].

    There is no update or delete API; entries are only ever prepended.
    """

    def __init__(self, store: DocumentStoreInterface):
        self.store = store

    def append(
        self,
        document: Document,
        actor: str,
        action: AuditAction,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        """
        Prepend an entry to an already loaded document.

        Used by other components inside their own document transaction so
        the audit entry is saved together with the change it describes.

        Args:
            document: Loaded document that the caller will save
            actor: User (or "system") performing the action
            action: Audited action tag
            details: Structured payload

        Returns:
            Created AuditEntry
        """
        entries = document.setdefault("audit", [])
        previous_hash = entries[0].get("current_hash", "") if entries else ""

        entry = AuditEntry(
            at=datetime.now(timezone.utc).isoformat(),
            user=actor,
            action=action,
            details=details or {},
            previous_hash=previous_hash
        )
        entry.current_hash = entry.calculate_hash()

        entries.insert(0, entry.to_dict())
        return entry

    def record(
        self,
        actor: str,
        action: AuditAction,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        """Record an entry in its own document transaction"""
        with self.store.transaction() as document:
            return self.append(document, actor, action, details)

    def list(self, limit: Optional[int] = None) -> List[AuditEntry]:
        """List entries, newest first"""
        entries = [AuditEntry.from_dict(data) for data in self.store.load().get("audit", [])]
        if limit:
            entries = entries[:limit]
        return entries

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_entries': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        # Walk oldest to newest
        entries = [AuditEntry.from_dict(data) for data in self.store.load().get("audit", [])]
        entries.reverse()
        result['total_entries'] = len(entries)

        previous_hash = ""
        for position, entry in enumerate(entries):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'position': position,
                    'expected_hash': entry.calculate_hash(),
                    'actual_hash': entry.current_hash
                })
            if entry.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': entry.previous_hash
                })
            previous_hash = entry.current_hash

        return result
