"""
Settings Module

Typed views over document["settings"]. OTP and SMS settings are updated by
field-by-field shallow merge: supplied fields overwrite, omitted fields keep
their previous value.
"""

from dataclasses import dataclass, replace
from typing import Dict, Any, FrozenSet, Optional
from enum import Enum
import logging

from .storage import DocumentStoreInterface, Document, DEFAULT_SMS_TEMPLATE
from .audit import AuditLog, AuditAction
from .errors import UnknownSettingError, InvalidSettingError


logger = logging.getLogger(__name__)


class Purpose(Enum):
    """What an OTP is gating"""
    OPEN = "open"    # Account opening
    CASH = "cash"    # Counter operations
    FIELD = "field"  # Field agent operations


def _positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidSettingError(f"Setting '{key}' must be a positive integer, got {value!r}")
    return value


def _boolean(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidSettingError(f"Setting '{key}' must be a boolean, got {value!r}")
    return value


def _string(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidSettingError(f"Setting '{key}' must be a string, got {value!r}")
    return value


@dataclass(frozen=True)
class OtpConfig:
    """OTP generation settings"""
    code_length: int = 6
    ttl_seconds: int = 180
    enabled_purposes: FrozenSet[Purpose] = frozenset(Purpose)
    country_calling_code: str = "+242"

    def is_enabled(self, purpose: Purpose) -> bool:
        return purpose in self.enabled_purposes

    def merge(self, partial: Dict[str, Any]) -> 'OtpConfig':
        """
        Return a copy with the supplied document-level fields applied.

        Accepted keys: length, ttl, cc, enable_open, enable_cash, enable_field.
        """
        changes: Dict[str, Any] = {}
        enabled = set(self.enabled_purposes)

        for key, value in partial.items():
            if key == "length":
                changes["code_length"] = _positive_int(key, value)
            elif key == "ttl":
                changes["ttl_seconds"] = _positive_int(key, value)
            elif key == "cc":
                changes["country_calling_code"] = _string(key, value).strip()
            elif key.startswith("enable_") and key[len("enable_"):] in {p.value for p in Purpose}:
                purpose = Purpose(key[len("enable_"):])
                if _boolean(key, value):
                    enabled.add(purpose)
                else:
                    enabled.discard(purpose)
            else:
                raise UnknownSettingError(f"Unknown OTP setting: {key}")

        changes["enabled_purposes"] = frozenset(enabled)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "length": self.code_length,
            "ttl": self.ttl_seconds
        }
        for purpose in Purpose:
            result[f"enable_{purpose.value}"] = purpose in self.enabled_purposes
        result["cc"] = self.country_calling_code
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OtpConfig':
        defaults = cls()
        return cls(
            code_length=data.get("length") or defaults.code_length,
            ttl_seconds=data.get("ttl") or defaults.ttl_seconds,
            enabled_purposes=frozenset(
                p for p in Purpose if data.get(f"enable_{p.value}", False)
            ),
            country_calling_code=data.get("cc") or defaults.country_calling_code
        )


@dataclass(frozen=True)
class SmsConfig:
    """SMS gateway settings (delivery itself is not implemented)"""
    provider: str = "Twilio"
    sender: str = "COFIN"
    api_key: str = ""
    template: str = DEFAULT_SMS_TEMPLATE

    FIELDS = ("provider", "sender", "api_key", "template")

    def merge(self, partial: Dict[str, Any]) -> 'SmsConfig':
        """Return a copy with the supplied fields applied"""
        changes = {}
        for key, value in partial.items():
            if key not in self.FIELDS:
                raise UnknownSettingError(f"Unknown SMS setting: {key}")
            changes[key] = _string(key, value)
        return replace(self, **changes)

    def render(self, code: str, purpose: str) -> str:
        """Fill the message template"""
        return self.template.replace("{{code}}", code).replace("{{purpose}}", purpose)

    def to_dict(self, mask_secret: bool = False) -> Dict[str, Any]:
        api_key = self.api_key
        if mask_secret and api_key:
            api_key = "***"
        return {
            "provider": self.provider,
            "sender": self.sender,
            "api_key": api_key,
            "template": self.template
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SmsConfig':
        return cls(**{key: data[key] for key in cls.FIELDS if key in data})


class SettingsStore:
    """Reads and updates the settings section of the document"""

    def __init__(self, store: DocumentStoreInterface, audit_log: AuditLog):
        self.store = store
        self.audit_log = audit_log

    @staticmethod
    def otp_config_of(document: Document) -> OtpConfig:
        """OTP config of an already loaded document"""
        return OtpConfig.from_dict(document.get("settings", {}).get("otp", {}))

    @staticmethod
    def sms_config_of(document: Document) -> SmsConfig:
        """SMS config of an already loaded document"""
        return SmsConfig.from_dict(document.get("settings", {}).get("sms", {}))

    def get_settings(self) -> Dict[str, Any]:
        document = self.store.load()
        return {
            "sms": self.sms_config_of(document).to_dict(),
            "otp": self.otp_config_of(document).to_dict()
        }

    def get_otp_config(self) -> OtpConfig:
        return self.otp_config_of(self.store.load())

    def get_sms_config(self) -> SmsConfig:
        return self.sms_config_of(self.store.load())

    def merge_otp_config(self, partial: Dict[str, Any], actor: Optional[str] = None) -> OtpConfig:
        """
        Shallow-merge OTP settings.

        Raises:
            UnknownSettingError: If a key is not an OTP setting
            InvalidSettingError: If a value has the wrong type
        """
        with self.store.transaction() as document:
            otp_config = self.otp_config_of(document).merge(partial)
            document.setdefault("settings", {})["otp"] = otp_config.to_dict()
            self.audit_log.append(
                document, actor or "admin", AuditAction.SETTINGS_OTP_UPDATED,
                {"fields": sorted(partial.keys()), "otp": otp_config.to_dict()}
            )

        logger.info("OTP settings updated: %s", sorted(partial.keys()))
        return otp_config

    def merge_sms_config(self, partial: Dict[str, Any], actor: Optional[str] = None) -> SmsConfig:
        """Shallow-merge SMS settings"""
        with self.store.transaction() as document:
            sms_config = self.sms_config_of(document).merge(partial)
            document.setdefault("settings", {})["sms"] = sms_config.to_dict()
            self.audit_log.append(
                document, actor or "admin", AuditAction.SETTINGS_SMS_UPDATED,
                {"fields": sorted(partial.keys()), "sms": sms_config.to_dict(mask_secret=True)}
            )

        logger.info("SMS settings updated: %s", sorted(partial.keys()))
        return sms_config
