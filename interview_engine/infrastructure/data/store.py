"""
Session persistence.

SessionStore is the async contract the controller calls. JsonFileSessionStore
keeps one JSON document per session in a storage directory.
"""
import asyncio
import json
import logging
import os
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from ...config import SNAPSHOT_MAX_AGE_HOURS
from ...errors import PersistenceError

logger = logging.getLogger("session_store")


class SessionStore(Protocol):
    """Opaque keyed store for sessions and their responses. Every call may raise PersistenceError."""

    async def create_session(self, config: Dict[str, Any]) -> str: ...

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]: ...

    async def update_session_progress(self, session_id: str, answered: int, skipped: int) -> None: ...

    async def save_response(self, session_id: str, question_id: str, order: int,
                            fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def complete_session(self, session_id: str, duration_seconds: int,
                               integrity_metrics: Dict[str, Any],
                               overall_score: Optional[int] = None,
                               integrity_score: Optional[int] = None) -> None: ...

    async def save_execution_result(self, response_id: str, session_id: str,
                                    report: Dict[str, Any], code: str, language: str) -> None: ...

    async def save_review_response(self, response_id: str, session_id: str,
                                   review: Dict[str, Any], fields: Dict[str, Any]) -> None: ...

    async def get_session_responses(self, session_id: str) -> List[Dict[str, Any]]: ...

    async def save_session_state(self, session_id: str, state: Dict[str, Any]) -> None: ...

    async def load_session_state(self, session_id: str) -> Optional[Dict[str, Any]]: ...

    async def clear_session_state(self, session_id: str) -> None: ...

    async def find_recoverable_session(self, user_id: Optional[str],
                                       max_age_hours: float = SNAPSHOT_MAX_AGE_HOURS) -> Optional[Dict[str, Any]]: ...


def _now() -> str:
    return datetime.now().isoformat()


class JsonFileSessionStore:
    """File-backed store; blocking file IO runs in a worker thread."""

    def __init__(self, storage_dir: str = "sessions"):
        self.storage_dir = storage_dir
        os.makedirs(storage_dir, exist_ok=True)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _path(self, session_id: str) -> str:
        return os.path.join(self.storage_dir, f"{session_id}.json")

    def _lock(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def _read(self, session_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(session_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read session {session_id}: {e}")

    def _write(self, record: Dict[str, Any]) -> None:
        path = self._path(record["id"])
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, default=str)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not write session {record['id']}: {e}")

    def _require(self, session_id: str) -> Dict[str, Any]:
        record = self._read(session_id)
        if record is None:
            raise PersistenceError(f"Session not found: {session_id}")
        return record

    async def _update(self, session_id: str, mutate) -> Any:
        async with self._lock(session_id):
            def work():
                record = self._require(session_id)
                result = mutate(record)
                record["updated_at"] = _now()
                self._write(record)
                return result
            return await asyncio.to_thread(work)

    async def create_session(self, config: Dict[str, Any]) -> str:
        """Create a new interview session record."""
        session_id = str(uuid.uuid4())
        record = {
            "id": session_id,
            **config,
            "status": "in_progress",
            "questions_answered": 0,
            "questions_skipped": 0,
            "tab_switches_count": 0,
            "fullscreen_exits_count": 0,
            "total_violation_time": 0,
            "violations_log": [],
            "responses": [],
            "created_at": _now(),
            "updated_at": _now(),
        }
        await asyncio.to_thread(self._write, record)
        logger.info(f"Created new session: {session_id}")
        return session_id

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._read, session_id)

    async def update_session_progress(self, session_id: str, answered: int, skipped: int) -> None:
        def mutate(record):
            record["questions_answered"] = answered
            record["questions_skipped"] = skipped
        await self._update(session_id, mutate)

    async def save_response(self, session_id: str, question_id: str, order: int,
                            fields: Dict[str, Any]) -> Dict[str, Any]:
        """Append a response; returns the stored response (with its id)."""
        response = {
            "id": str(uuid.uuid4()),
            "session_id": session_id,
            "question_id": question_id,
            "question_order": order,
            **fields,
            "execution_results": [],
            "review_responses": [],
            "created_at": _now(),
        }

        def mutate(record):
            record["responses"].append(response)
            return dict(response)
        saved = await self._update(session_id, mutate)
        logger.info(f"Saved response {saved['id']} for question {question_id} (order {order})")
        return saved

    def _find_response(self, record: Dict[str, Any], response_id: str) -> Dict[str, Any]:
        for response in record["responses"]:
            if response["id"] == response_id:
                return response
        raise PersistenceError(f"Response not found: {response_id}")

    async def save_execution_result(self, response_id: str, session_id: str,
                                    report: Dict[str, Any], code: str, language: str) -> None:
        entry = {"code": code, "language": language, **report, "created_at": _now()}

        def mutate(record):
            self._find_response(record, response_id)["execution_results"].append(entry)
        await self._update(session_id, mutate)

    async def save_review_response(self, response_id: str, session_id: str,
                                   review: Dict[str, Any], fields: Dict[str, Any]) -> None:
        entry = {"review_question": review, **fields, "created_at": _now()}

        def mutate(record):
            self._find_response(record, response_id)["review_responses"].append(entry)
        await self._update(session_id, mutate)

    async def complete_session(self, session_id: str, duration_seconds: int,
                               integrity_metrics: Dict[str, Any],
                               overall_score: Optional[int] = None,
                               integrity_score: Optional[int] = None) -> None:
        def mutate(record):
            record.update(integrity_metrics)
            record["status"] = "completed"
            record["duration_seconds"] = duration_seconds
            record["overall_score"] = overall_score
            record["integrity_score"] = integrity_score
            record["completed_at"] = _now()
        await self._update(session_id, mutate)
        logger.info(f"Completed session {session_id} ({duration_seconds}s)")

    async def get_session_responses(self, session_id: str) -> List[Dict[str, Any]]:
        record = await self.get_session(session_id)
        if record is None:
            return []
        return sorted(record["responses"], key=lambda r: r["question_order"])

    # -- in-progress snapshots -----------------------------------------------

    async def save_session_state(self, session_id: str, state: Dict[str, Any]) -> None:
        """Replace the session's resumable snapshot."""
        def mutate(record):
            record["snapshot"] = {**state, "last_saved": _now()}
        await self._update(session_id, mutate)
        logger.debug(f"Saved snapshot for session {session_id}")

    async def load_session_state(self, session_id: str) -> Optional[Dict[str, Any]]:
        record = await self.get_session(session_id)
        if record is None:
            return None
        return record.get("snapshot")

    async def clear_session_state(self, session_id: str) -> None:
        def mutate(record):
            record.pop("snapshot", None)
        await self._update(session_id, mutate)

    def _snapshots_for(self, user_id: Optional[str]) -> List[Dict[str, Any]]:
        snapshots = []
        for name in sorted(os.listdir(self.storage_dir)):
            if not name.endswith(".json"):
                continue
            try:
                record = self._read(name[:-len(".json")])
            except PersistenceError as e:
                logger.warning(f"Skipping unreadable session file {name}: {e}")
                continue
            if not record or record.get("status") != "in_progress" or not record.get("snapshot"):
                continue
            if record.get("user_id") != user_id:
                continue
            snapshots.append(record["snapshot"])
        return snapshots

    async def find_recoverable_session(self, user_id: Optional[str],
                                       max_age_hours: float = SNAPSHOT_MAX_AGE_HOURS) -> Optional[Dict[str, Any]]:
        """
        Most recent unfinished session snapshot for a user.

        Snapshots older than `max_age_hours` are cleared instead of returned.

        Returns:
            The snapshot, or None if nothing can be recovered
        """
        snapshots = await asyncio.to_thread(self._snapshots_for, user_id)
        cutoff = datetime.now() - timedelta(hours=max_age_hours)
        latest = None
        for snapshot in snapshots:
            if datetime.fromisoformat(snapshot["last_saved"]) < cutoff:
                logger.info(f"Discarding expired snapshot for session {snapshot['session_id']}")
                await self.clear_session_state(snapshot["session_id"])
                continue
            if latest is None or snapshot["last_saved"] > latest["last_saved"]:
                latest = snapshot
        return latest
