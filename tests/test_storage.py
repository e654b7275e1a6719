"""
Tests for document store backends
"""

import pytest
import json

from cofin_core.storage import (
    InMemoryDocumentStore, JSONFileDocumentStore, seed_document
)


class TestSeedDocument:
    """Test the default document"""
    
    def test_seed_collections_are_empty(self):
        document = seed_document()
        
        assert document["accounts"] == {"pending": [], "active": []}
        assert document["operations"] == []
        assert document["journal"] == []
        assert document["otps"] == {}
        assert document["audit"] == []
    
    def test_seed_settings(self):
        document = seed_document("+33")
        otp = document["settings"]["otp"]
        
        assert otp["length"] == 6
        assert otp["ttl"] == 180
        assert otp["enable_open"] and otp["enable_cash"] and otp["enable_field"]
        assert otp["cc"] == "+33"
        assert document["settings"]["sms"]["sender"] == "COFIN"
    
    def test_seed_users(self):
        usernames = [u["username"] for u in seed_document()["users"]]
        assert usernames == ["superadmin", "chefA", "caisse1", "terrain1"]


class TestInMemoryDocumentStore:
    """Test InMemoryDocumentStore"""
    
    def test_load_seeds_on_first_run(self):
        store = InMemoryDocumentStore()
        assert not store.exists()
        
        document = store.load()
        
        assert store.exists()
        assert document["meta"]["version"] == "1.0.0"
    
    def test_save_and_load(self):
        store = InMemoryDocumentStore()
        document = store.load()
        document["operations"].append({"id": "op1"})
        store.save(document)
        
        assert store.load()["operations"] == [{"id": "op1"}]
    
    def test_load_returns_copy(self):
        store = InMemoryDocumentStore()
        document = store.load()
        document["operations"].append({"id": "op1"})
        
        # Not saved, so not visible
        assert store.load()["operations"] == []
    
    def test_transaction_saves_on_success(self):
        store = InMemoryDocumentStore()
        
        with store.transaction() as document:
            document["journal"].append({"compte": "Caisse"})
        
        assert len(store.load()["journal"]) == 1
    
    def test_transaction_discards_on_error(self):
        store = InMemoryDocumentStore()
        store.load()
        
        with pytest.raises(RuntimeError):
            with store.transaction() as document:
                document["journal"].append({"compte": "Caisse"})
                raise RuntimeError("boom")
        
        assert store.load()["journal"] == []
    
    def test_save_updates_last_update(self):
        store = InMemoryDocumentStore()
        document = store.load()
        document["meta"]["last_update"] = "2000-01-01T00:00:00+00:00"
        store.save(document)
        
        assert store.load()["meta"]["last_update"] != "2000-01-01T00:00:00+00:00"


class TestJSONFileDocumentStore:
    """Test JSONFileDocumentStore"""
    
    def test_first_load_creates_file(self, tmp_path):
        path = tmp_path / "data" / "db.json"
        store = JSONFileDocumentStore(path)
        
        document = store.load()
        
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == document
    
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "db.json"
        with JSONFileDocumentStore(path).transaction() as document:
            document["operations"].append({"id": "op1", "type": "Dépôt caisse"})
        
        reloaded = JSONFileDocumentStore(path).load()
        assert reloaded["operations"] == [{"id": "op1", "type": "Dépôt caisse"}]
    
    def test_no_temp_files_left_behind(self, tmp_path):
        store = JSONFileDocumentStore(tmp_path / "db.json")
        store.save(store.load())
        
        assert [p.name for p in tmp_path.iterdir()] == ["db.json"]
    
    def test_failed_transaction_keeps_file(self, tmp_path):
        path = tmp_path / "db.json"
        store = JSONFileDocumentStore(path)
        store.load()
        before = path.read_text(encoding="utf-8")
        
        with pytest.raises(ValueError):
            with store.transaction() as document:
                document["operations"].append({"id": "op1"})
                raise ValueError("invalid")
        
        assert path.read_text(encoding="utf-8") == before
