"""
Ephemeral, TTL-bounded asset sessions on the local filesystem.

Layout:
    {base_dir}/{session_id}/metadata.json
    {base_dir}/{session_id}/{images,fonts,css,other}/...
    {base_dir}/.locks/{session_id}.lock

Every metadata change goes through _update_metadata(): take the session's
file lock, re-read, mutate, write a temp file and os.replace() it over the
old document, release. Readers therefore only ever see complete documents.

The `locked` flag is separate from the file lock: it marks a session that
is being populated so cleanup leaves it alone.
"""

import asyncio
import json
import os
import re
import shutil
import time
import uuid
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from filelock import FileLock, Timeout
from pydantic import BaseModel, Field, ValidationError

from pagekit.asset_matcher import AssetEntry, AssetUrlMap
from pagekit.errors import MetadataCorruptionError, MetadataLockTimeout, SessionNotFoundError

SESSION_ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
METADATA_FILE = "metadata.json"


class AssetType(str, Enum):
    IMAGES = "images"
    FONTS = "fonts"
    CSS = "css"
    OTHER = "other"


class AssetDescriptor(BaseModel):
    original_url: str = ""
    absolute_url: str = ""
    local_filename: str
    asset_type: AssetType
    size_bytes: int
    saved_at: float
    content_type: str | None = None
    font_family: str | None = None
    font_weight: str | None = None
    font_style: str | None = None
    font_format: str | None = None
    imports_resolved: int | None = None


def _empty_asset_lists() -> dict:
    return {asset_type: [] for asset_type in AssetType}


class Session(BaseModel):
    session_id: str
    created_at: float
    expires_at: float
    locked: bool = False
    assets: dict[AssetType, list[AssetDescriptor]] = Field(default_factory=_empty_asset_lists)

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) > self.expires_at

    def all_assets(self) -> list[AssetDescriptor]:
        return [asset for assets in self.assets.values() for asset in assets]


def is_session_id(value: str) -> bool:
    return isinstance(value, str) and bool(SESSION_ID_RE.match(value))


def is_safe_filename(name: str) -> bool:
    if not name or name in (".", ".."):
        return False
    if "/" in name or "\\" in name or "\x00" in name:
        return False
    return name == os.path.basename(name)


def safe_asset_filename(name: str) -> str:
    cleaned = UNSAFE_FILENAME_CHARS.sub("_", os.path.basename(name or "")).lstrip(".")
    return cleaned[:150] or f"asset_{uuid.uuid4().hex[:12]}"


class AssetSessionStore:
    def __init__(self, base_dir: str | Path = "temp-assets", ttl_seconds: float = 24 * 3600,
                 url_prefix: str = "/assets", lock_timeout: float = 0.5, lock_retries: int = 10,
                 backoff_min: float = 0.05, backoff_max: float = 2.0):
        self.base_dir = Path(base_dir)
        self.locks_dir = self.base_dir / ".locks"
        self.ttl_seconds = ttl_seconds
        self.url_prefix = url_prefix.rstrip("/")
        self.lock_timeout = lock_timeout
        self.lock_retries = lock_retries
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    @classmethod
    def from_settings(cls, settings) -> "AssetSessionStore":
        return cls(
            base_dir=settings.storage_dir,
            ttl_seconds=settings.session_ttl_seconds,
            url_prefix=settings.asset_url_prefix,
            lock_timeout=settings.metadata_lock_timeout,
            lock_retries=settings.metadata_lock_retries,
            backoff_min=settings.metadata_lock_backoff_min,
            backoff_max=settings.metadata_lock_backoff_max,
        )

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def session_dir(self, session_id: str) -> Path:
        if not is_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.base_dir / session_id

    def _metadata_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / METADATA_FILE

    def _lock_path(self, session_id: str) -> Path:
        return self.locks_dir / f"{session_id}.lock"

    def local_url(self, session_id: str, asset_type: AssetType, filename: str) -> str:
        return f"{self.url_prefix}/{session_id}/{AssetType(asset_type).value}/{filename}"

    # ------------------------------------------------------------------
    # Blocking primitives (run via asyncio.to_thread)
    # ------------------------------------------------------------------

    def _init_dirs(self):
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.locks_dir.mkdir(parents=True, exist_ok=True)

    def _read_metadata(self, session_id: str) -> Session:
        path = self._metadata_path(session_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise MetadataCorruptionError(f"{session_id}: metadata missing") from e
        except UnicodeDecodeError as e:
            raise MetadataCorruptionError(f"{session_id}: metadata is not text") from e
        try:
            return Session.model_validate_json(raw)
        except ValidationError as e:
            raise MetadataCorruptionError(f"{session_id}: {e.error_count()} invalid fields") from e

    def _write_metadata(self, session: Session, path: Path | None = None):
        path = path or self._metadata_path(session.session_id)
        tmp = path.with_name(f".{METADATA_FILE}.{uuid.uuid4().hex}.tmp")
        try:
            tmp.write_text(session.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()

    @contextmanager
    def _metadata_lock(self, session_id: str):
        self.locks_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self._lock_path(session_id)))
        for attempt in range(self.lock_retries + 1):
            try:
                lock.acquire(timeout=self.lock_timeout)
                break
            except Timeout:
                if attempt >= self.lock_retries:
                    raise MetadataLockTimeout(
                        f"Could not lock metadata for {session_id} after {attempt + 1} attempts"
                    )
                wait = min(self.backoff_min * (2 ** attempt), self.backoff_max)
                print(f"  [asset-store] Metadata lock busy for {session_id[:8]}, retrying in {wait:.2f}s")
                time.sleep(wait)
        try:
            yield
        finally:
            lock.release()

    def _update_metadata(self, session_id: str, mutate) -> Session:
        if not self.session_dir(session_id).is_dir():
            raise SessionNotFoundError(session_id)
        with self._metadata_lock(session_id):
            try:
                session = self._read_metadata(session_id)
            except MetadataCorruptionError:
                if not self.session_dir(session_id).is_dir():
                    raise SessionNotFoundError(session_id)
                raise
            result = mutate(session)
            if isinstance(result, Session):
                session = result
            self._write_metadata(session)
            return session

    def _create_session(self) -> Session:
        self._init_dirs()
        now = time.time()
        session = Session(session_id=str(uuid.uuid4()), created_at=now, expires_at=now + self.ttl_seconds)
        session_dir = self.session_dir(session.session_id)
        # Built under a non-UUID name and renamed into place complete, so a
        # sweep never sees a session directory without its metadata
        staging = self.base_dir / f".tmp-{session.session_id}"
        try:
            for asset_type in AssetType:
                (staging / asset_type.value).mkdir(parents=True, exist_ok=True)
            # Nobody else knows this id yet, so no file lock is needed
            self._write_metadata(session, path=staging / METADATA_FILE)
            os.replace(staging, session_dir)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        return session

    def _is_locked(self, session_id: str) -> bool:
        try:
            return self._read_metadata(session_id).locked
        except MetadataCorruptionError:
            return False

    def _is_expired(self, session_id: str) -> bool:
        try:
            return self._read_metadata(session_id).is_expired()
        except MetadataCorruptionError:
            return True

    def _delete_session(self, session_id: str, expired_only: bool = False) -> bool:
        session_dir = self.session_dir(session_id)
        if not session_dir.exists():
            return True
        if self._is_locked(session_id):
            print(f"  [asset-store] Session {session_id[:8]} is locked, not deleting")
            return False
        with self._metadata_lock(session_id):
            # lock_session() needs this file lock too, so the flag cannot flip
            # between this check and the removal
            if self._is_locked(session_id):
                print(f"  [asset-store] Session {session_id[:8]} was locked before removal, not deleting")
                return False
            if expired_only and not self._is_expired(session_id):
                print(f"  [asset-store] Session {session_id[:8]} is no longer expired, not deleting")
                return False
            shutil.rmtree(session_dir)
        print(f"  [asset-store] Deleted session {session_id[:8]}")
        return True

    def _list_sessions(self) -> list[str]:
        if not self.base_dir.is_dir():
            return []
        return sorted(p.name for p in self.base_dir.iterdir() if p.is_dir() and is_session_id(p.name))

    def _expired_sessions(self) -> list[str]:
        now = time.time()
        expired = []
        for session_id in self._list_sessions():
            try:
                session = self._read_metadata(session_id)
            except MetadataCorruptionError as e:
                print(f"  [asset-store] Treating {session_id[:8]} as expired: {e}")
                expired.append(session_id)
                continue
            if session.is_expired(now):
                expired.append(session_id)
        return expired

    def _prune_lock_files(self) -> int:
        if not self.locks_dir.is_dir():
            return 0
        removed = 0
        for lock_file in self.locks_dir.glob("*.lock"):
            session_id = lock_file.stem
            # Session ids are never reused, so a lock without a session is dead
            if is_session_id(session_id) and not (self.base_dir / session_id).exists():
                lock_file.unlink(missing_ok=True)
                removed += 1
        return removed

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def initialize(self):
        await asyncio.to_thread(self._init_dirs)
        print(f"  [asset-store] Storage ready at {self.base_dir}")

    async def create_session(self) -> Session:
        session = await asyncio.to_thread(self._create_session)
        print(f"  [asset-store] Created session {session.session_id}")
        return session

    async def get_session(self, session_id: str) -> Session | None:
        """The session, or None if it is missing, expired or unreadable."""
        if not is_session_id(session_id):
            return None
        try:
            session = await asyncio.to_thread(self._read_metadata, session_id)
        except MetadataCorruptionError:
            return None
        if session.is_expired():
            return None
        return session

    async def save_metadata(self, session_id: str, mutate) -> Session:
        """
        Apply `mutate(session)` under the session's file lock and persist the
        result atomically. `mutate` may edit the session in place or return a
        replacement.
        """
        return await asyncio.to_thread(self._update_metadata, session_id, mutate)

    async def save_asset(self, session_id: str, asset_type: AssetType | str, filename: str, data: bytes,
                         original_url: str = "", absolute_url: str = "", **details) -> AssetDescriptor:
        asset_type = AssetType(asset_type)
        if await self.get_session(session_id) is None:
            raise SessionNotFoundError(session_id)

        filename = safe_asset_filename(filename)
        path = self.session_dir(session_id) / asset_type.value / filename
        await asyncio.to_thread(path.write_bytes, data)

        descriptor = AssetDescriptor(
            original_url=original_url,
            absolute_url=absolute_url or original_url,
            local_filename=filename,
            asset_type=asset_type,
            size_bytes=len(data),
            saved_at=time.time(),
            **details,
        )

        def track(session: Session):
            existing = session.assets.setdefault(asset_type, [])
            existing[:] = [a for a in existing if a.local_filename != filename]
            existing.append(descriptor)

        await self.save_metadata(session_id, track)
        return descriptor

    async def get_asset(self, session_id: str, asset_type: AssetType | str, filename: str) -> bytes | None:
        try:
            asset_type = AssetType(asset_type)
        except ValueError:
            return None
        if not is_safe_filename(filename) or await self.get_session(session_id) is None:
            return None
        type_dir = (self.session_dir(session_id) / asset_type.value).resolve()
        path = (type_dir / filename).resolve()
        if path.parent != type_dir or not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def lock_session(self, session_id: str):
        def mark(session: Session):
            session.locked = True

        await self.save_metadata(session_id, mark)
        print(f"  [asset-store] Locked session {session_id[:8]}")

    async def unlock_session(self, session_id: str):
        def clear(session: Session):
            session.locked = False

        try:
            await self.save_metadata(session_id, clear)
        except (SessionNotFoundError, MetadataCorruptionError) as e:
            print(f"  [asset-store] Unlock skipped for {session_id[:8]}: {e}")
            return
        print(f"  [asset-store] Unlocked session {session_id[:8]}")

    async def delete_session(self, session_id: str, expired_only: bool = False) -> bool:
        """
        False when the session is locked (or, with `expired_only`, no longer
        expired when re-read under the file lock); True once it is gone.
        """
        return await asyncio.to_thread(self._delete_session, session_id, expired_only)

    async def list_sessions(self) -> list[str]:
        return await asyncio.to_thread(self._list_sessions)

    async def get_expired_sessions(self) -> list[str]:
        return await asyncio.to_thread(self._expired_sessions)

    async def prune_lock_files(self) -> int:
        return await asyncio.to_thread(self._prune_lock_files)

    async def asset_url_map(self, session_id: str, base_url: str = "") -> AssetUrlMap:
        url_map = AssetUrlMap(base_url=base_url)
        session = await self.get_session(session_id)
        if session is None:
            return url_map
        for asset_type, assets in session.assets.items():
            for asset in assets:
                url_map.add(AssetEntry(
                    original_url=asset.original_url,
                    absolute_url=asset.absolute_url,
                    local_url=self.local_url(session_id, asset_type, asset.local_filename),
                    asset_type=asset_type.value,
                ))
        return url_map

    async def get_stats(self) -> dict:
        def collect():
            now = time.time()
            stats = {"total_sessions": 0, "active": 0, "expired": 0, "locked": 0,
                     "corrupt": 0, "total_assets": 0, "total_size": 0}
            for session_id in self._list_sessions():
                stats["total_sessions"] += 1
                try:
                    session = self._read_metadata(session_id)
                except MetadataCorruptionError:
                    stats["corrupt"] += 1
                    stats["expired"] += 1
                    continue
                if session.is_expired(now):
                    stats["expired"] += 1
                else:
                    stats["active"] += 1
                if session.locked:
                    stats["locked"] += 1
                assets = session.all_assets()
                stats["total_assets"] += len(assets)
                stats["total_size"] += sum(a.size_bytes for a in assets)
            stats["total_size_mb"] = round(stats["total_size"] / (1024 * 1024), 2)
            return stats

        return await asyncio.to_thread(collect)
