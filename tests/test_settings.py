"""
Tests for typed settings and shallow-merge updates
"""

import pytest

from cofin_core.storage import InMemoryDocumentStore
from cofin_core.audit import AuditLog, AuditAction
from cofin_core.settings import SettingsStore, OtpConfig, SmsConfig, Purpose
from cofin_core.errors import UnknownSettingError, InvalidSettingError


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit_log(store):
    return AuditLog(store)


@pytest.fixture
def settings(store, audit_log):
    return SettingsStore(store, audit_log)


class TestOtpConfig:
    """Test OtpConfig merge and serialization"""
    
    def test_from_seed(self, settings):
        otp_config = settings.get_otp_config()
        
        assert otp_config.code_length == 6
        assert otp_config.ttl_seconds == 180
        assert otp_config.enabled_purposes == frozenset(Purpose)
        assert otp_config.country_calling_code == "+242"
    
    def test_merge_keeps_omitted_fields(self):
        merged = OtpConfig().merge({"length": 4})
        
        assert merged.code_length == 4
        assert merged.ttl_seconds == 180
        assert merged.enabled_purposes == frozenset(Purpose)
    
    def test_merge_disables_purpose(self):
        merged = OtpConfig().merge({"enable_cash": False})
        
        assert not merged.is_enabled(Purpose.CASH)
        assert merged.is_enabled(Purpose.OPEN)
        assert merged.is_enabled(Purpose.FIELD)
    
    def test_merge_does_not_mutate_original(self):
        original = OtpConfig()
        original.merge({"ttl": 60})
        assert original.ttl_seconds == 180
    
    def test_unknown_key_rejected(self):
        with pytest.raises(UnknownSettingError):
            OtpConfig().merge({"enable_sms": True})
    
    @pytest.mark.parametrize("partial", [
        {"length": 0},
        {"length": "6"},
        {"ttl": -5},
        {"ttl": True},
        {"enable_open": "yes"},
        {"cc": 242},
    ])
    def test_invalid_values_rejected(self, partial):
        with pytest.raises(InvalidSettingError):
            OtpConfig().merge(partial)
    
    def test_round_trip_keeps_document_keys(self):
        data = OtpConfig(code_length=8, enabled_purposes=frozenset({Purpose.OPEN})).to_dict()
        
        assert data == {
            "length": 8, "ttl": 180,
            "enable_open": True, "enable_cash": False, "enable_field": False,
            "cc": "+242"
        }
        assert OtpConfig.from_dict(data).code_length == 8


class TestSmsConfig:
    """Test SmsConfig merge and template rendering"""
    
    def test_render_template(self):
        message = SmsConfig().render("123456", "open")
        assert message == "[COFIN] Code: 123456 pour open"
    
    def test_merge(self):
        merged = SmsConfig().merge({"sender": "COFINCO"})
        assert merged.sender == "COFINCO"
        assert merged.provider == "Twilio"
    
    def test_unknown_key_rejected(self):
        with pytest.raises(UnknownSettingError):
            SmsConfig().merge({"password": "x"})


class TestSettingsStore:
    """Test persisted settings updates"""
    
    def test_merge_otp_config_persists(self, settings, store):
        settings.merge_otp_config({"ttl": 60, "cc": "+33"})
        
        otp = store.load()["settings"]["otp"]
        assert otp["ttl"] == 60
        assert otp["cc"] == "+33"
        assert otp["length"] == 6
    
    def test_merge_sms_config_persists(self, settings):
        settings.merge_sms_config({"api_key": "secret"})
        
        assert settings.get_sms_config().api_key == "secret"
        assert settings.get_settings()["sms"]["sender"] == "COFIN"
    
    def test_updates_are_audited(self, settings, audit_log):
        settings.merge_otp_config({"length": 4}, actor="superadmin")
        settings.merge_sms_config({"api_key": "secret"})
        
        entries = audit_log.list()
        assert [e.action for e in entries] == [
            AuditAction.SETTINGS_SMS_UPDATED, AuditAction.SETTINGS_OTP_UPDATED
        ]
        assert entries[1].user == "superadmin"
        assert entries[0].details["sms"]["api_key"] == "***"
    
    def test_failed_merge_leaves_settings_unchanged(self, settings):
        with pytest.raises(UnknownSettingError):
            settings.merge_otp_config({"length": 4, "bogus": 1})
        
        assert settings.get_otp_config().code_length == 6
