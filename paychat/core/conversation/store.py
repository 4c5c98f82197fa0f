"""
Chat thread storage.

All threads live in one collection that is loaded once when the store is
created and written back as a whole snapshot after every mutation. Saving is
best effort: when the snapshot cannot be written the conversation carries on
in memory for the rest of the session.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Literal, Optional, Protocol

from pydantic import ValidationError

from .models import ConversationMessage, ConversationThread

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 48


class PersistenceFailure(Exception):
    """The thread snapshot could not be read or written."""


class ThreadNotFound(KeyError):
    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")


class ThreadPersistence(Protocol):
    def load(self) -> List[ConversationThread]: ...

    def save(self, threads: List[ConversationThread]) -> None: ...


def _dump_snapshot(threads: List[ConversationThread]) -> Dict[str, object]:
    return {"threads": [thread.model_dump(mode="json") for thread in threads]}


def _parse_snapshot(data: object) -> List[ConversationThread]:
    if not isinstance(data, dict) or not isinstance(data.get("threads"), list):
        raise PersistenceFailure("Thread snapshot has no 'threads' list")
    try:
        return [ConversationThread.model_validate(item) for item in data["threads"]]
    except ValidationError as exc:
        raise PersistenceFailure(f"Thread snapshot is invalid: {exc}") from exc


class InMemoryThreadPersistence:
    """Keeps the last saved snapshot in memory (tests, throwaway sessions)."""

    def __init__(self, threads: Optional[List[ConversationThread]] = None):
        self.snapshot: Dict[str, object] = _dump_snapshot(threads or [])
        self.save_count = 0

    def load(self) -> List[ConversationThread]:
        return _parse_snapshot(self.snapshot)

    def save(self, threads: List[ConversationThread]) -> None:
        self.snapshot = _dump_snapshot(threads)
        self.save_count += 1


class JsonFileThreadPersistence:
    """Stores the snapshot as one JSON file, replaced atomically on save."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[ConversationThread]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:  # also JSONDecodeError, UnicodeDecodeError
            raise PersistenceFailure(f"Cannot read {self.path}: {exc}") from exc
        return _parse_snapshot(data)

    def save(self, threads: List[ConversationThread]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".threads-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(_dump_snapshot(threads), f, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise PersistenceFailure(f"Cannot write {self.path}: {exc}") from exc


class ConversationStore:
    """Thread collection with injected persistence (load on init, save on mutation)."""

    def __init__(self, persistence: Optional[ThreadPersistence] = None):
        self._persistence = persistence or InMemoryThreadPersistence()
        self._threads: Dict[str, ConversationThread] = {}
        self._load()

    def _load(self) -> None:
        try:
            threads = self._persistence.load()
        except PersistenceFailure as exc:
            logger.warning(f"Starting with no saved threads: {exc}")
            threads = []
        self._threads = {thread.thread_id: thread for thread in threads}

    def _save(self) -> None:
        try:
            self._persistence.save(list(self._threads.values()))
        except PersistenceFailure as exc:
            logger.warning(f"Thread snapshot not saved, continuing in memory: {exc}")

    def create_thread(self, title: Optional[str] = None, greeting: Optional[str] = None) -> ConversationThread:
        messages = [ConversationMessage(role="agent", content=greeting)] if greeting else []
        thread = ConversationThread(title=title, messages=messages)
        self._threads[thread.thread_id] = thread
        self._save()
        return thread

    def get_thread(self, thread_id: str) -> ConversationThread:
        try:
            return self._threads[thread_id]
        except KeyError:
            raise ThreadNotFound(thread_id) from None

    def has_thread(self, thread_id: str) -> bool:
        return thread_id in self._threads

    def list_threads(self) -> List[ConversationThread]:
        """Threads, most recently active first."""
        return sorted(self._threads.values(), key=lambda t: t.updated_at, reverse=True)

    def append_message(
        self,
        thread_id: str,
        role: Literal["user", "agent"],
        content: str,
    ) -> ConversationMessage:
        thread = self.get_thread(thread_id)
        message = ConversationMessage(role=role, content=content)

        update: Dict[str, object] = {
            "messages": [*thread.messages, message],
            "updated_at": datetime.now(timezone.utc),
        }
        if thread.title is None and role == "user":
            update["title"] = _title_from(content)

        self._threads[thread_id] = thread.model_copy(update=update)
        self._save()
        return message

    def delete_thread(self, thread_id: str) -> bool:
        if self._threads.pop(thread_id, None) is None:
            return False
        self._save()
        return True


def _title_from(content: str) -> str:
    title = " ".join(content.split())
    if len(title) > TITLE_MAX_LENGTH:
        title = title[: TITLE_MAX_LENGTH - 3].rstrip() + "..."
    return title


__all__ = [
    "ConversationStore",
    "InMemoryThreadPersistence",
    "JsonFileThreadPersistence",
    "PersistenceFailure",
    "ThreadNotFound",
    "ThreadPersistence",
]
