"""
Firestore access for the live beat map.

Only the projection writes here: one document per beat under `beats/`, with
its violations as a subcollection. The client is built from the service
account file in GCP_CREDENTIALS_PATH and must be able to read the `beats`
collection before it is handed out. When ENABLE_FIRESTORE is off, the
credentials are missing or that read fails, get_firestore_client() returns
None and the projection stays idle until reset_firestore_state().
"""

import threading
from pathlib import Path
from typing import Optional

from beatwatch.config import config

BEATS_COLLECTION = "beats"
VIOLATIONS_COLLECTION = "violations"
READ_CHECK_TIMEOUT_SECONDS = 3.0

_client = None
_reachable: Optional[bool] = None  # None until the first connection attempt


def firestore_enabled() -> bool:
    return bool(config.ENABLE_FIRESTORE)


def _credentials_file() -> Optional[Path]:
    path = Path(config.GCP_CREDENTIALS_PATH)
    if not path.is_absolute():
        # Relative paths are resolved against backend/
        path = Path(__file__).resolve().parents[2] / path
    return path if path.is_file() else None


def check_beats_readable(client, timeout: float = READ_CHECK_TIMEOUT_SECONDS) -> bool:
    """
    Read at most one document from the beats collection.

    Runs on a daemon thread so an unreachable backend costs `timeout`
    seconds instead of hanging the caller.
    """
    finished = threading.Event()
    outcome = {"ok": False}

    def _read():
        try:
            list(client.collection(BEATS_COLLECTION).limit(1).stream())
            outcome["ok"] = True
        except Exception as e:
            print(f"[Firestore] Cannot read '{BEATS_COLLECTION}': {e}")
        finally:
            finished.set()

    threading.Thread(target=_read, daemon=True).start()
    if not finished.wait(timeout):
        print(f"[Firestore] Reading '{BEATS_COLLECTION}' timed out ({timeout}s)")
        return False
    return outcome["ok"]


def _connect():
    credentials = _credentials_file()
    if credentials is None:
        print(f"[Firestore] Credentials not found: {config.GCP_CREDENTIALS_PATH}")
        return None

    from google.cloud import firestore

    return firestore.Client.from_service_account_json(
        str(credentials),
        project=config.GCP_PROJECT_ID or None,
        database=config.get_firestore_database(),
    )


def get_firestore_client():
    """Client for the beat projection, or None when disabled or unreachable."""
    global _client, _reachable

    if not firestore_enabled() or _reachable is False:
        return None
    if _client is not None:
        return _client

    try:
        client = _connect()
    except Exception as e:
        print(f"[Firestore] Connection error: {e}")
        client = None

    if client is None or not check_beats_readable(client):
        _reachable = False
        return None

    _client, _reachable = client, True
    print(f"[Firestore] Projecting beats to {config.GCP_PROJECT_ID or client.project}/{config.get_firestore_database()}")
    return _client


def firestore_available() -> bool:
    return get_firestore_client() is not None


def reset_firestore_state():
    """Forget the client so the next call reconnects."""
    global _client, _reachable
    _client = None
    _reachable = None
