"""
Document Store Module

The whole back-office state lives in one JSON document. Stores load and save
that document as a unit; every public operation reads it, mutates it in
memory and writes it back. Implementations are provided for in-memory
(testing) and JSON file (persistence) backends.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Iterator, Optional, Union
from datetime import datetime, timezone
from pathlib import Path
from contextlib import contextmanager
import json
import logging
import os
import tempfile
import threading


logger = logging.getLogger(__name__)

Document = Dict[str, Any]

DOCUMENT_VERSION = "1.0.0"

DEFAULT_SMS_TEMPLATE = "[COFIN] Code: {{code}} pour {{purpose}}"


def seed_document(country_code: str = "+242") -> Document:
    """Build the default document used on first run"""
    return {
        "meta": {
            "version": DOCUMENT_VERSION,
            "last_update": datetime.now(timezone.utc).isoformat()
        },
        "users": [
            {"id": "u1", "username": "superadmin", "role": "Super Admin"},
            {"id": "u2", "username": "chefA", "role": "ChefAgence"},
            {"id": "u3", "username": "caisse1", "role": "Caissier"},
            {"id": "u4", "username": "terrain1", "role": "AgentTerrain"}
        ],
        "settings": {
            "sms": {
                "provider": "Twilio",
                "sender": "COFIN",
                "api_key": "",
                "template": DEFAULT_SMS_TEMPLATE
            },
            "otp": {
                "length": 6,
                "ttl": 180,
                "enable_open": True,
                "enable_cash": True,
                "enable_field": True,
                "cc": country_code
            }
        },
        "accounts": {"pending": [], "active": []},
        "operations": [],
        "journal": [],
        "otps": {},
        "audit": []
    }


class DocumentStoreInterface(ABC):
    """Abstract interface for document store backends"""

    def __init__(self, country_code: str = "+242"):
        self.country_code = country_code

    @abstractmethod
    def _read(self) -> Optional[Document]:
        """Read the stored document, None if nothing has been stored yet"""
        pass

    @abstractmethod
    def _write(self, document: Document) -> None:
        """Persist the whole document"""
        pass

    @abstractmethod
    def exists(self) -> bool:
        """Check whether a document has been stored"""
        pass

    def load(self) -> Document:
        """Load the document, seeding and persisting a default one on first run"""
        document = self._read()
        if document is None:
            logger.info("No document found, seeding default state")
            document = seed_document(self.country_code)
            self._write(document)
        return document

    def save(self, document: Document) -> None:
        """Save the whole document"""
        document.setdefault("meta", {})["last_update"] = datetime.now(timezone.utc).isoformat()
        self._write(document)

    @contextmanager
    def transaction(self) -> Iterator[Document]:
        """
        Load the document, yield it for mutation and save it on success.

        Nothing is written when the block raises, so a failed operation
        leaves the stored document as it was. There is no locking: two
        overlapping transactions resolve as last writer wins.
        """
        document = self.load()
        yield document
        self.save(document)


class InMemoryDocumentStore(DocumentStoreInterface):
    """In-memory document store for testing"""

    def __init__(self, document: Optional[Document] = None, country_code: str = "+242"):
        super().__init__(country_code)
        self._lock = threading.RLock()
        self._document: Optional[Document] = None
        if document is not None:
            self._write(document)

    def _read(self) -> Optional[Document]:
        with self._lock:
            if self._document is None:
                return None
            # Deep copy to prevent external mutation
            return json.loads(json.dumps(self._document))

    def _write(self, document: Document) -> None:
        with self._lock:
            self._document = json.loads(json.dumps(document, default=str))

    def exists(self) -> bool:
        with self._lock:
            return self._document is not None


class JSONFileDocumentStore(DocumentStoreInterface):
    """JSON file document store for persistence"""

    def __init__(self, path: Union[str, Path], country_code: str = "+242"):
        super().__init__(country_code)
        self.path = Path(path)

    def _read(self) -> Optional[Document]:
        if not self.path.exists():
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, document: Document) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a sibling temp file then swap it in
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def exists(self) -> bool:
        return self.path.exists()
