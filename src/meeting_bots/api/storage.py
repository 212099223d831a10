"""
Session storage.

Uses Firestore for session rows when a GCP project is configured and falls
back to local JSON files otherwise.

Every writer of bot fields goes through ``transact_session`` so that a
read-modify-write never loses a concurrent update: a Firestore transaction
in cloud mode, a process-wide lock in local mode.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from google.cloud import firestore

from meeting_bots.config import BotServiceConfig
from meeting_bots.models.session import BOT_FIELDS

logger = logging.getLogger(__name__)

COLLECTION = "sessions"

# Enhancement guard states
ENHANCEMENT_IN_PROGRESS = "in_progress"
ENHANCEMENT_DONE = "done"
ENHANCEMENT_FAILED = "failed"

Mutation = Callable[[dict[str, Any]], dict[str, Any]]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionStorage:
    """
    Handles persistence for session rows.

    Supports both cloud (Firestore) and local (JSON files) storage modes.
    """

    def __init__(self, config: BotServiceConfig, client: Any = None):
        """
        Initialize storage.

        Args:
            config: Service configuration (GCP project, local directory)
            client: Optional Firestore client (tests, shared clients)
        """
        self.local_dir = os.path.join(config.output_dir, COLLECTION)
        self._lock = threading.RLock()

        self.db = client
        if self.db is None and config.uses_firestore:
            self.db = firestore.Client(project=config.gcp_project)

        if self.db is not None:
            logger.info("Session storage: Firestore (%s)", config.gcp_project or "default")
        else:
            os.makedirs(self.local_dir, exist_ok=True)
            logger.info("Session storage: local JSON files (%s)", self.local_dir)

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def create_session(
        self,
        session_id: str,
        user: str | None = None,
        organization_id: str | None = None,
        title: str | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        """
        Create a session record.

        Sessions are normally created by the session-creation collaborator;
        this exists for local development, the CLI and tests.
        """
        now = utc_now()
        session = {
            "id": session_id,
            "user": user,
            "organization_id": organization_id,
            "title": title,
            "bot_id": None,
            "bot_status": None,
            "bot_error": None,
            "bot_recording_minutes": 0,
            "created_at": now,
            "updated_at": now,
        }
        session.update(fields)

        if self.db is not None:
            self.db.collection(COLLECTION).document(session_id).set(session)
        else:
            with self._lock:
                self._save_local(session_id, session)

        return session

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        """Get a session by ID."""
        if self.db is not None:
            doc = self.db.collection(COLLECTION).document(session_id).get()
            return doc.to_dict() if doc.exists else None
        return self._load_local(session_id)

    def update_session(self, session_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        """
        Write bot fields on a session record.

        Args:
            session_id: Session ID
            updates: Fields to update (bot fields only)

        Returns:
            dict: Updated session record, or None if the session does not exist

        Raises:
            ValueError: If a field outside the bot subset is written
        """
        _check_fields(updates)
        if self.transact_session(session_id, lambda current: dict(updates)) is None:
            return None
        return self.get_session(session_id)

    def list_sessions(
        self,
        user: str | None = None,
        organization_id: str | None = None,
        with_bot: bool = False,
        where: Callable[[dict[str, Any]], bool] | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """
        List sessions, newest first.

        Args:
            user: Filter by user (None = all users)
            organization_id: Filter by organization (None = all)
            with_bot: Only sessions that have a bot attached
            where: Extra predicate applied to each row
            limit: Maximum number of results

        Returns:
            list: Session records
        """
        def wanted(data: dict[str, Any]) -> bool:
            if user and data.get("user") != user:
                return False
            if organization_id and data.get("organization_id") != organization_id:
                return False
            if with_bot and not data.get("bot_id"):
                return False
            return where is None or where(data)

        if self.db is not None:
            # Filter in Python to avoid needing composite indexes
            query = self.db.collection(COLLECTION)
            query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
            results = []
            for doc in query.stream():
                data = doc.to_dict()
                if not wanted(data):
                    continue
                results.append(data)
                if len(results) >= limit:
                    break
            return results

        sessions = []
        if os.path.exists(self.local_dir):
            for filename in os.listdir(self.local_dir):
                if not filename.endswith(".json"):
                    continue
                session = self._load_local(filename[:-5])
                if session and wanted(session):
                    sessions.append(session)

        sessions.sort(key=lambda s: s.get("created_at") or "", reverse=True)
        return sessions[:limit]

    # =========================================================================
    # ATOMIC UPDATES
    # =========================================================================

    def transact_session(self, session_id: str, mutate: Mutation) -> dict[str, Any] | None:
        """
        Atomically read a session, compute updates, and write them.

        ``mutate`` receives the current row and returns the fields to change.
        It may run more than once under Firestore contention and must not
        have side effects.

        Returns:
            The updates that were written ({} when nothing changed), or None
            if the session does not exist.
        """
        if self.db is not None:
            return self._transact_firestore(session_id, mutate)

        with self._lock:
            current = self._load_local(session_id)
            if current is None:
                return None
            updates = mutate(dict(current))
            if updates:
                updates = {**updates, "updated_at": utc_now()}
                current.update(updates)
                self._save_local(session_id, current)
            return updates or {}

    def _transact_firestore(self, session_id: str, mutate: Mutation) -> dict[str, Any] | None:
        doc_ref = self.db.collection(COLLECTION).document(session_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _txn(txn: firestore.Transaction) -> dict[str, Any] | None:
            snapshot = doc_ref.get(transaction=txn)
            if not snapshot.exists:
                return None
            updates = mutate(snapshot.to_dict() or {})
            if updates:
                updates = {**updates, "updated_at": utc_now()}
                txn.update(doc_ref, updates)
            return updates or {}

        return _txn(transaction)

    def claim_enhancement(self, session_id: str) -> bool:
        """
        Claim the enhancement guard for a session.

        Succeeds when no enhancement has run yet or the last one failed.

        Returns:
            True if this caller now holds the guard
        """
        def claim(current: dict[str, Any]) -> dict[str, Any]:
            if current.get("bot_enhancement_state") in (None, ENHANCEMENT_FAILED):
                return {"bot_enhancement_state": ENHANCEMENT_IN_PROGRESS}
            return {}

        return bool(self.transact_session(session_id, claim))

    # =========================================================================
    # LOCAL FILES
    # =========================================================================

    def _path(self, session_id: str) -> str:
        return os.path.join(self.local_dir, f"{session_id}.json")

    def _save_local(self, session_id: str, session: dict[str, Any]) -> None:
        os.makedirs(self.local_dir, exist_ok=True)
        path = self._path(session_id)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(session, f, indent=2)
        os.replace(tmp_path, path)

    def _load_local(self, session_id: str) -> dict[str, Any] | None:
        path = self._path(session_id)
        if not os.path.exists(path):
            return None
        with open(path, "r") as f:
            return json.load(f)


def _check_fields(updates: dict[str, Any]) -> None:
    unknown = sorted(set(updates) - set(BOT_FIELDS))
    if unknown:
        raise ValueError(f"Not a bot field: {', '.join(unknown)}")
