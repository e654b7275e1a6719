"""
Tests for OTP issuance and verification

Covers code format, phone normalization, purpose gating, expiry and the
verified flag.
"""

import pytest
from datetime import datetime, timezone, timedelta

from cofin_core.storage import InMemoryDocumentStore
from cofin_core.audit import AuditLog, AuditAction
from cofin_core.settings import SettingsStore, Purpose
from cofin_core.otp import OtpService, SmsSender, generate_code
from cofin_core.errors import (
    NotFoundError, ExpiredError, CodeMismatchError, PurposeDisabledError
)


class FakeClock:
    """Controllable clock"""
    
    def __init__(self):
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    
    def __call__(self):
        return self.now
    
    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class RecordingSmsSender(SmsSender):
    
    def __init__(self):
        self.messages = []
    
    def send(self, phone, message):
        self.messages.append((phone, message))


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit_log(store):
    return AuditLog(store)


@pytest.fixture
def settings(store, audit_log):
    return SettingsStore(store, audit_log)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sms_sender():
    return RecordingSmsSender()


@pytest.fixture
def otp_service(store, settings, audit_log, sms_sender, clock):
    return OtpService(store, settings, audit_log, sms_sender=sms_sender, clock=clock)


class TestGenerateCode:
    
    @pytest.mark.parametrize("length", [1, 4, 6, 10])
    def test_length_and_digits(self, length):
        for _ in range(50):
            code = generate_code(length)
            assert len(code) == length
            assert all(c in "0123456789" for c in code)


class TestIssue:
    """Test OtpService.issue"""
    
    def test_issue_returns_code_of_configured_length(self, otp_service):
        issued = otp_service.issue("061234567", "open")
        
        assert len(issued.code) == 6
        assert issued.code.isdigit()
        assert len(issued.transaction_id) == 12
    
    def test_issue_uses_configured_length(self, otp_service, settings):
        settings.merge_otp_config({"length": 4})
        
        assert len(otp_service.issue("061234567", "cash").code) == 4
    
    def test_local_phone_normalized(self, otp_service):
        issued = otp_service.issue("061234567", "open")
        assert issued.normalized_phone == "+24261234567"
    
    def test_international_phone_unchanged(self, otp_service):
        issued = otp_service.issue("+15551234", "open")
        assert issued.normalized_phone == "+15551234"
    
    def test_record_stored_unverified_with_expiry(self, otp_service, clock):
        issued = otp_service.issue("061234567", "field")
        record = otp_service.get(issued.transaction_id)
        
        assert record.code == issued.code
        assert record.phone == "+24261234567"
        assert record.purpose == Purpose.FIELD
        assert record.verified is False
        assert record.expire_at == clock.now + timedelta(seconds=180)
    
    def test_disabled_purpose_rejected(self, otp_service, settings, store):
        settings.merge_otp_config({"enable_cash": False})
        
        with pytest.raises(PurposeDisabledError):
            otp_service.issue("061234567", "cash")
        assert store.load()["otps"] == {}
    
    def test_unknown_purpose_rejected(self, otp_service):
        with pytest.raises(PurposeDisabledError):
            otp_service.issue("061234567", "transfer")
    
    def test_sms_sent_with_rendered_template(self, otp_service, sms_sender):
        issued = otp_service.issue("061234567", "open")
        
        assert sms_sender.messages == [
            ("+24261234567", f"[COFIN] Code: {issued.code} pour open")
        ]
    
    def test_issue_is_audited_without_code(self, otp_service, audit_log):
        issued = otp_service.issue("061234567", "open")
        
        entry = audit_log.list()[0]
        assert entry.action == AuditAction.OTP_SEND
        assert entry.user == "system"
        assert entry.details == {
            "txnId": issued.transaction_id, "phone": "+24261234567", "purpose": "open"
        }


class TestVerify:
    """Test OtpService.verify"""
    
    def test_verify_marks_verified(self, otp_service):
        issued = otp_service.issue("061234567", "open")
        
        assert otp_service.verify(issued.transaction_id, issued.code) is True
        assert otp_service.get(issued.transaction_id).verified is True
    
    def test_unknown_transaction(self, otp_service):
        with pytest.raises(NotFoundError):
            otp_service.verify("nope", "123456")
    
    def test_wrong_code(self, otp_service):
        issued = otp_service.issue("061234567", "open")
        wrong = "0" * 6 if issued.code != "0" * 6 else "1" * 6
        
        with pytest.raises(CodeMismatchError):
            otp_service.verify(issued.transaction_id, wrong)
        assert otp_service.get(issued.transaction_id).verified is False
    
    def test_code_compared_exactly(self, otp_service):
        issued = otp_service.issue("061234567", "open")
        
        with pytest.raises(CodeMismatchError):
            otp_service.verify(issued.transaction_id, f" {issued.code}")
    
    def test_valid_until_expiry(self, otp_service, clock):
        issued = otp_service.issue("061234567", "open")
        clock.advance(180)
        
        assert otp_service.verify(issued.transaction_id, issued.code)
    
    def test_expired_with_correct_code(self, otp_service, clock):
        issued = otp_service.issue("061234567", "open")
        clock.advance(181)
        
        with pytest.raises(ExpiredError):
            otp_service.verify(issued.transaction_id, issued.code)
    
    def test_expired_with_wrong_code(self, otp_service, clock):
        issued = otp_service.issue("061234567", "open")
        clock.advance(3600)
        
        with pytest.raises(ExpiredError):
            otp_service.verify(issued.transaction_id, "not-the-code")
    
    def test_reverification_allowed(self, otp_service):
        issued = otp_service.issue("061234567", "open")
        otp_service.verify(issued.transaction_id, issued.code)
        
        assert otp_service.verify(issued.transaction_id, issued.code)
    
    def test_purpose_not_rechecked_at_verification(self, otp_service, settings):
        issued = otp_service.issue("061234567", "cash")
        settings.merge_otp_config({"enable_cash": False})
        
        assert otp_service.verify(issued.transaction_id, issued.code)
    
    def test_verify_is_audited(self, otp_service, audit_log):
        issued = otp_service.issue("061234567", "open")
        otp_service.verify(issued.transaction_id, issued.code)
        
        entry = audit_log.list()[0]
        assert entry.action == AuditAction.OTP_VERIFY
        assert entry.details == {"txnId": issued.transaction_id}
