"""
Admission draft persistence

A half-filled admission form survives reloads by being written to a
key-value storage under a fixed key. The storage is injected so the desk can
run against a file on disk or an in-memory dict.
"""

import os
import json
import logging
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ADMISSION_DRAFT_KEY = "academy_sparkle_admission_draft"


def _today() -> str:
    return date.today().isoformat()


class AdmissionDraft(BaseModel):
    """Everything typed into the admission form, kept as entered"""
    studentName: str = ""
    fatherName: str = ""
    gender: str = "Male"
    selectedClassId: str = ""
    selectedSessionId: str = ""
    group: str = ""
    selectedSubjects: List[str] = Field(default_factory=list)
    parentCell: str = ""
    studentCell: str = ""
    address: str = ""
    referralSource: str = ""
    admissionDate: str = Field(default_factory=_today)
    totalFee: str = ""
    paidAmount: str = ""
    isCustomFeeMode: bool = False
    photo: Optional[str] = None

    def is_blank(self) -> bool:
        return not (self.studentName or self.fatherName or self.selectedClassId or self.parentCell)


class MemoryStorage:
    def __init__(self):
        self._items = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """String values kept in one JSON object on disk"""

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.getenv("ACADEMY_DRAFT_FILE", os.path.join(os.path.expanduser("~"), ".academy_storage.json"))

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                items = json.load(fh)
        except (OSError, ValueError):
            logger.exception("Storage file %s is unreadable, starting empty", self.path)
            return {}
        return items if isinstance(items, dict) else {}

    def _write(self, items: dict) -> None:
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(items, fh)
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value
        self._write(items)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if key in items:
            del items[key]
            self._write(items)


class DraftStore:
    def __init__(self, storage=None, key: str = ADMISSION_DRAFT_KEY):
        self.storage = storage if storage is not None else MemoryStorage()
        self.key = key

    def load(self) -> Optional[AdmissionDraft]:
        """Return the saved draft, or None when nothing usable is stored.

        Fields missing from the stored JSON come back as their defaults;
        unknown keys are ignored.
        """
        raw = self.storage.get_item(self.key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("draft is not a JSON object")
            # stored nulls fall back to defaults
            data = {k: v for k, v in data.items() if v is not None}
            draft = AdmissionDraft.model_validate(data)
        except ValueError:
            logger.exception("Error loading admission draft")
            return None
        logger.info("Admission draft loaded")
        return draft

    def save(self, draft: AdmissionDraft) -> bool:
        """Persist the draft; a completely blank form is not written"""
        if draft.is_blank():
            return False
        self.storage.set_item(self.key, draft.model_dump_json())
        return True

    def clear(self) -> None:
        self.storage.remove_item(self.key)
