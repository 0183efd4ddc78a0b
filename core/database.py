"""
MOOMA Firebase Database Initialization

Initializes Firebase Admin SDK for Firestore access.
Supports mock mode when credentials are unavailable.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, firestore

from core.config import settings

logger = logging.getLogger("mooma.database")

# Global Firestore client
_db: Optional[firestore.Client] = None
_mock_db: Optional["MockFirestoreClient"] = None
_mock_mode: bool = False


def init_firebase() -> bool:
    """
    Initialize Firebase Admin SDK.

    Returns:
        bool: True if connected successfully, False if running in mock mode.
    """
    global _db, _mock_mode

    if _db is not None:
        return True
    if _mock_mode:
        return False

    cred_path = Path(__file__).parent.parent / settings.FIREBASE_CREDENTIALS_PATH

    if not cred_path.exists():
        logger.warning(
            f"⚠️ Firebase credentials not found at '{cred_path}'. "
            "Running in MOCK MODE - exercise history is kept in memory."
        )
        _mock_mode = True
        return False

    try:
        cred = credentials.Certificate(str(cred_path))

        # Already initialized during hot reload
        if not firebase_admin._apps:
            firebase_admin.initialize_app(cred, {
                'projectId': settings.FIREBASE_PROJECT_ID,
            })
            logger.info(f"🔥 Firebase Admin SDK initialized for project: {settings.FIREBASE_PROJECT_ID}")

        _db = firestore.client()
        logger.info("✅ Connected to Firestore successfully!")
        return True

    except (ValueError, OSError, exceptions.FirebaseError) as e:
        logger.error(f"❌ Failed to initialize Firebase: {e}")
        logger.warning("Running in MOCK MODE - exercise history is kept in memory.")
        _mock_mode = True
        return False


def get_db() -> Optional[firestore.Client]:
    """
    Get Firestore database client.

    Returns:
        Firestore client or None if in mock mode.
    """
    if _db is None and not _mock_mode:
        init_firebase()

    return _db


def is_mock_mode() -> bool:
    """Check if running in mock mode (no Firebase connection)."""
    return _mock_mode


def enable_mock_mode():
    """Force mock mode with a fresh in-memory store (used by tests and local runs)."""
    global _mock_mode, _mock_db
    _mock_mode = True
    _mock_db = MockFirestoreClient()


# ============================================
# Mock Database for Development/Testing
# ============================================

class MockFirestoreClient:
    """
    Mock Firestore client for development without Firebase.
    Stores data in memory.
    """

    def __init__(self):
        self._collections: Dict[str, "MockCollection"] = {}
        logger.info("🧪 MockFirestoreClient initialized (in-memory storage)")

    def collection(self, name: str) -> "MockCollection":
        if name not in self._collections:
            self._collections[name] = MockCollection(name)
        return self._collections[name]


class MockCollection:
    """Mock Firestore collection."""

    def __init__(self, name: str):
        self.name = name
        self._documents: Dict[str, "MockDocument"] = {}

    def document(self, doc_id: Optional[str] = None) -> "MockDocument":
        if doc_id is None:
            doc_id = f"mock_{len(self._documents) + 1}"
        if doc_id not in self._documents:
            self._documents[doc_id] = MockDocument(doc_id, self)
        return self._documents[doc_id]

    def add(self, data: dict):
        doc = self.document(f"mock_{len(self._documents) + 1}")
        doc.set(data)
        return (None, doc)

    def get(self) -> List["MockDocument"]:
        return [doc for doc in self._documents.values() if doc.exists]

    def stream(self) -> List["MockDocument"]:
        return self.get()


class MockDocument:
    """Mock Firestore document with sub-collections."""

    def __init__(self, doc_id: str, collection: MockCollection):
        self.id = doc_id
        self._collection = collection
        self._data: Dict[str, Any] = {}
        self._subcollections: Dict[str, MockCollection] = {}
        self.exists = False

    def set(self, data: dict, merge: bool = False):
        if merge:
            self._data.update(data)
        else:
            self._data = data.copy()
        self.exists = True

    def get(self) -> "MockDocument":
        return self

    def to_dict(self) -> Dict[str, Any]:
        return self._data.copy()

    def collection(self, name: str) -> MockCollection:
        if name not in self._subcollections:
            self._subcollections[name] = MockCollection(name)
        return self._subcollections[name]


# ============================================
# Database Helper Functions
# ============================================

def get_database():
    """
    Get database client (real or mock).
    Use this in your services to automatically handle mock mode.
    """
    global _mock_db
    db = get_db()
    if db is not None:
        return db
    if _mock_db is None:
        _mock_db = MockFirestoreClient()
    return _mock_db
