"""Content-addressed report cache.

The key is a SHA-256 fingerprint of everything that determines a report:
prompt version, query text, attached files, report kind, provider, model
and generation parameters. Credentials are deliberately not part of it.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field

import aiosqlite

from siftdesk.config import settings
from siftdesk.db.database import Database
from siftdesk.models.query import UploadedFile
from siftdesk.models.report import CacheEntry, ReportKind

logger = logging.getLogger(__name__)

KEY_PREFIX = "report-cache-"


@dataclass
class CacheableRequest:
    text: str
    report_kind: ReportKind
    provider: str
    model_id: str
    config_params: dict = field(default_factory=dict)
    files: list[UploadedFile] = field(default_factory=list)
    prompt_version: str = ""


def hash_string(value: str) -> str:
    if not value:
        return ""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_files(files: list[UploadedFile]) -> str:
    """Order-independent hash over each file's content and name."""
    file_hashes = sorted(hash_string(f.content + f.name) for f in files)
    return hash_string("|".join(file_hashes))


def hash_config(params: dict) -> str:
    return hash_string(json.dumps(params, sort_keys=True, default=str))


def derive_cache_key(request: CacheableRequest) -> str:
    version = request.prompt_version or settings.prompt_version
    parts = [
        f"v:{version}",
        f"txt:{hash_string(request.text)}",
        f"files:{hash_files(request.files)}",
        f"rt:{request.report_kind.value}",
        f"pvd:{request.provider}",
        f"mdl:{request.model_id}",
        f"cfg:{hash_config(request.config_params)}",
    ]
    # Labelled parts keep one field's value from passing for another's.
    return KEY_PREFIX + hash_string("\n".join(parts))


class ReportCache:
    """Stores completed reports by derived key. Failures never propagate."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def get(self, key: str) -> CacheEntry | None:
        try:
            payload = await self.db.get_cache_payload(key)
        except aiosqlite.Error as exc:
            logger.error("Cache read failed for %s: %s", key, exc)
            return None
        if payload is None:
            return None

        try:
            return CacheEntry.from_dict(json.loads(payload))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Removing corrupt cache entry %s: %s", key, exc)
            try:
                await self.db.delete_cache_entry(key)
            except aiosqlite.Error:
                logger.exception("Could not remove corrupt cache entry %s", key)
            return None

    async def put(self, key: str, entry: CacheEntry) -> bool:
        try:
            await self.db.put_cache_payload(key, json.dumps(entry.to_dict()))
        except (aiosqlite.Error, TypeError, ValueError) as exc:
            logger.error("Cache write failed for %s: %s", key, exc)
            return False
        logger.info("Cached report under %s", key)
        return True
