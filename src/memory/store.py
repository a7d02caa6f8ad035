"""
MemoryStore: file-backed longitudinal memory with atomic writes and
write-once archives.

Layout under the memory root:
    students/<quoted id>.json
    class.json
    archive/run-<run id>-student-<quoted id>.json
    archive/run-<run id>-class.json
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from src.memory.models import (
    ClassMemory,
    ClassMemoryArchive,
    StudentMemory,
    StudentMemoryArchive,
)
from src.shared.config import settings
from src.shared.logging import get_logger, log_with_context
from src.shared.results import WriteOutcome

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

CLASS_KEY = "class"


def quote_id(student_id: str) -> str:
    """Filesystem-safe, collision-free key for a student id."""
    return quote(student_id, safe="")


class MemoryStore:
    """JSON file store for student and class memory."""

    def __init__(self, memory_dir: Optional[Path] = None):
        self.root = Path(memory_dir or settings.memory.memory_dir)
        self.students_dir = self.root / "students"
        self.archive_dir = self.root / "archive"
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # Paths

    def student_path(self, student_id: str) -> Path:
        return self.students_dir / f"{quote_id(student_id)}.json"

    def class_path(self) -> Path:
        return self.root / "class.json"

    def student_archive_path(self, run_id: str, student_id: str) -> Path:
        return self.archive_dir / f"run-{quote_id(run_id)}-student-{quote_id(student_id)}.json"

    def class_archive_path(self, run_id: str) -> Path:
        return self.archive_dir / f"run-{quote_id(run_id)}-class.json"

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    # Loading

    def _read_json(self, path: Path, student_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Decoded JSON object at path, or None (logged) when missing or unusable."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            log_with_context(
                logger, logging.WARNING, f"Failed to read memory file {path}: {e}",
                student_id=student_id, action="memory_load",
            )
            return None

        if not isinstance(data, dict):
            log_with_context(
                logger, logging.WARNING, f"Memory file {path} is not a JSON object",
                student_id=student_id, action="memory_load",
            )
            return None
        return data

    @staticmethod
    def _merge(model: Type[M], default: M, data: Optional[Dict[str, Any]]) -> M:
        """Overlay each well-typed field of data onto the default, one field at a time."""
        merged = default.model_dump(by_alias=True)
        if not data:
            return default

        for name, info in model.model_fields.items():
            key = info.alias or name
            if key in data:
                value = data[key]
            elif name in data:
                value = data[name]
            else:
                continue
            try:
                model.model_validate({**merged, key: value})
            except ValidationError:
                logger.debug(f"Ignoring malformed memory field '{key}'")
                continue
            merged[key] = value

        return model.model_validate(merged)

    def load_student(self, student_id: str) -> StudentMemory:
        """Stored memory for a student, or a complete default. Never raises."""
        default = StudentMemory(student_id=student_id)
        with self._lock_for(f"student:{student_id}"):
            data = self._read_json(self.student_path(student_id), student_id=student_id)
        memory = self._merge(StudentMemory, default, data)
        # The file name is authoritative for identity
        return memory.model_copy(update={"student_id": student_id})

    def load_class(self) -> ClassMemory:
        """Stored class memory, or a complete default. Never raises."""
        with self._lock_for(CLASS_KEY):
            data = self._read_json(self.class_path())
        return self._merge(ClassMemory, ClassMemory(), data)

    # Writing

    def _write_atomic(self, path: Path, payload: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def _write_exclusive(self, path: Path, payload: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "x", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    def save_student(self, memory: StudentMemory) -> WriteOutcome:
        """Atomically replace a student's memory file."""
        path = self.student_path(memory.student_id)
        try:
            with self._lock_for(f"student:{memory.student_id}"):
                self._write_atomic(path, memory.model_dump(by_alias=True))
        except OSError as e:
            log_with_context(
                logger, logging.WARNING, f"Failed to save student memory: {e}",
                student_id=memory.student_id, action="memory_save",
            )
            return WriteOutcome.failed(f"student memory save failed: {e}")
        return WriteOutcome.success(path)

    def save_class(self, memory: ClassMemory) -> WriteOutcome:
        """Atomically replace the class memory file."""
        path = self.class_path()
        try:
            with self._lock_for(CLASS_KEY):
                self._write_atomic(path, memory.model_dump(by_alias=True))
        except OSError as e:
            log_with_context(logger, logging.WARNING, f"Failed to save class memory: {e}", action="memory_save")
            return WriteOutcome.failed(f"class memory save failed: {e}")
        return WriteOutcome.success(path)

    def archive_student(self, archive: StudentMemoryArchive) -> WriteOutcome:
        """Write a run snapshot for a student; never overwrites an existing one."""
        path = self.student_archive_path(archive.run_id, archive.student_id)
        try:
            self._write_exclusive(path, archive.model_dump(by_alias=True))
        except OSError as e:
            log_with_context(
                logger, logging.WARNING, f"Failed to archive student memory: {e}",
                run_id=archive.run_id, student_id=archive.student_id, action="memory_archive",
            )
            return WriteOutcome.failed(f"student archive failed: {e}")
        return WriteOutcome.success(path)

    def archive_class(self, archive: ClassMemoryArchive) -> WriteOutcome:
        """Write a run snapshot for the class; never overwrites an existing one."""
        path = self.class_archive_path(archive.run_id)
        try:
            self._write_exclusive(path, archive.model_dump(by_alias=True))
        except OSError as e:
            log_with_context(
                logger, logging.WARNING, f"Failed to archive class memory: {e}",
                run_id=archive.run_id, action="memory_archive",
            )
            return WriteOutcome.failed(f"class archive failed: {e}")
        return WriteOutcome.success(path)
