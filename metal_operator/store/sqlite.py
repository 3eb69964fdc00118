"""Object store backed by SQLite, with in-process watch fan-out."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import BaseModel

from metal_operator.exceptions import AlreadyExistsError, ConflictError, NotFoundError
from metal_operator.models.meta import Resource, object_key
from metal_operator.store.base import (
    ADDED,
    DELETED,
    KINDS,
    MODIFIED,
    ObjectStore,
    T,
    Watch,
    WatchEvent,
)

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS objects (
    kind TEXT NOT NULL,
    namespace TEXT NOT NULL,
    name TEXT NOT NULL,
    uid TEXT NOT NULL,
    resource_version INTEGER NOT NULL,
    body TEXT NOT NULL,
    PRIMARY KEY (kind, namespace, name)
);
CREATE INDEX IF NOT EXISTS idx_objects_uid ON objects(uid);
"""

# metadata fields a patch is allowed to change
_MUTABLE_METADATA = ("labels", "finalizers", "ownerReferences")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteObjectStore(ObjectStore):
    """Versioned JSON documents keyed by (kind, namespace, name)."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._version = 0
        self._lock = asyncio.Lock()
        self._watches: dict[str, set[Watch]] = {}

    async def start(self) -> None:
        """Open the database, create tables, restore the version sequence."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

        async with self._db.execute("SELECT MAX(resource_version) FROM objects") as cur:
            row = await cur.fetchone()
            if row and row[0] is not None:
                self._version = row[0]

        logger.info("SqliteObjectStore started (%s, version=%d)", self._db_path, self._version)

    async def stop(self) -> None:
        """Close all watches and the DB connection."""
        for watches in list(self._watches.values()):
            for watch in list(watches):
                watch.close()
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def started(self) -> bool:
        return self._db is not None

    # -- Reads -----------------------------------------------------------------

    async def get(self, cls: type[T], name: str, namespace: str = "") -> T:
        doc = await self._load(cls.kind, namespace, name)
        if doc is None:
            raise NotFoundError(f"{cls.kind} {object_key(namespace, name)} not found")
        return cls.model_validate(doc)

    async def list(self, cls: type[T], namespace: str | None = None) -> list[T]:
        db = self._conn()
        if namespace is None:
            query = "SELECT body FROM objects WHERE kind = ? ORDER BY namespace, name"
            params: tuple = (cls.kind,)
        else:
            query = "SELECT body FROM objects WHERE kind = ? AND namespace = ? ORDER BY name"
            params = (cls.kind, namespace)
        async with db.execute(query, params) as cur:
            rows = await cur.fetchall()
        return [cls.model_validate(json.loads(row[0])) for row in rows]

    def watch(self, cls: type[Resource]) -> Watch:
        return Watch(cls.kind, self._watches)

    # -- Writes ----------------------------------------------------------------

    async def create(self, obj: T) -> T:
        cls = type(obj)
        events: list[tuple[str, str, dict]] = []
        async with self._lock:
            if await self._load(cls.kind, obj.namespace, obj.name) is not None:
                raise AlreadyExistsError(f"{cls.kind} {obj.key} already exists")
            doc = obj.model_dump(mode="json")
            self._init_metadata(doc)
            await self._write(cls.kind, doc)
            events.append((ADDED, cls.kind, doc))
        self._emit(events)
        return cls.model_validate(doc)

    async def patch(self, obj: T) -> T:
        cls = type(obj)
        events: list[tuple[str, str, dict]] = []
        async with self._lock:
            current = await self._require(obj)
            incoming = obj.model_dump(mode="json")
            new = copy.deepcopy(current)
            for field in cls.content_fields():
                new[field] = incoming[field]
            for field in _MUTABLE_METADATA:
                new["metadata"][field] = incoming["metadata"][field]

            if new == current:
                return cls.model_validate(current)
            if any(new[f] != current[f] for f in cls.content_fields()):
                new["metadata"]["generation"] += 1

            if new["metadata"]["deletionTimestamp"] and not new["metadata"]["finalizers"]:
                await self._remove(cls.kind, new, events)
            else:
                await self._write(cls.kind, new)
                events.append((MODIFIED, cls.kind, new))
        self._emit(events)
        return cls.model_validate(new)

    async def patch_status(self, obj: T) -> T:
        cls = type(obj)
        events: list[tuple[str, str, dict]] = []
        async with self._lock:
            current = await self._require(obj)
            new = copy.deepcopy(current)
            new["status"] = obj.model_dump(mode="json")["status"]
            if new == current:
                return cls.model_validate(current)
            await self._write(cls.kind, new)
            events.append((MODIFIED, cls.kind, new))
        self._emit(events)
        return cls.model_validate(new)

    async def apply(self, obj: T, field_manager: str, force: bool = False) -> T:
        cls = type(obj)
        applied = obj.model_dump(mode="json", exclude_unset=True)
        paths = _field_paths(cls, applied)
        events: list[tuple[str, str, dict]] = []
        async with self._lock:
            current = await self._load(cls.kind, obj.namespace, obj.name)
            if current is None:
                doc = obj.model_dump(mode="json")
                self._init_metadata(doc)
                doc["metadata"]["managedFields"] = {path: field_manager for path in paths}
                await self._write(cls.kind, doc)
                events.append((ADDED, cls.kind, doc))
                new = doc
            else:
                new = copy.deepcopy(current)
                managed = new["metadata"]["managedFields"]
                conflicts = {
                    path: managed[path]
                    for path, value in paths.items()
                    if managed.get(path, field_manager) != field_manager
                    and _get_path(new, path) != value
                }
                if conflicts and not force:
                    raise ConflictError(
                        f"Apply of {cls.kind} {obj.key} by {field_manager} conflicts on "
                        + ", ".join(f"{p} (owned by {m})" for p, m in sorted(conflicts.items())),
                        details={"conflicts": conflicts},
                    )
                for path, value in paths.items():
                    _set_path(new, path, value)
                    managed[path] = field_manager

                meta = new["metadata"]
                known = {ref["uid"] for ref in meta["ownerReferences"]}
                for ref in applied.get("metadata", {}).get("ownerReferences", []):
                    if ref["uid"] not in known:
                        meta["ownerReferences"].append(ref)
                meta["labels"].update(applied.get("metadata", {}).get("labels", {}))

                # Validate before persisting so a bad apply never lands.
                cls.model_validate(new)
                if new == current:
                    return cls.model_validate(current)
                if any(new[f] != current[f] for f in cls.content_fields()):
                    meta["generation"] += 1
                await self._write(cls.kind, new)
                events.append((MODIFIED, cls.kind, new))
        self._emit(events)
        return cls.model_validate(new)

    async def delete(self, cls: type[Resource], name: str, namespace: str = "") -> None:
        events: list[tuple[str, str, dict]] = []
        async with self._lock:
            doc = await self._load(cls.kind, namespace, name)
            if doc is None:
                raise NotFoundError(f"{cls.kind} {object_key(namespace, name)} not found")
            await self._delete_doc(cls.kind, doc, events)
        self._emit(events)

    # -- Internals -------------------------------------------------------------

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("SqliteObjectStore not started")
        return self._db

    async def _load(self, kind: str, namespace: str, name: str) -> dict | None:
        async with self._conn().execute(
            "SELECT body FROM objects WHERE kind = ? AND namespace = ? AND name = ?",
            (kind, namespace, name),
        ) as cur:
            row = await cur.fetchone()
        return json.loads(row[0]) if row else None

    async def _require(self, obj: Resource) -> dict:
        current = await self._load(obj.kind, obj.namespace, obj.name)
        if current is None:
            raise NotFoundError(f"{obj.kind} {obj.key} not found")
        stored_version = current["metadata"]["resourceVersion"]
        if obj.metadata.resourceVersion != stored_version:
            raise ConflictError(
                f"{obj.kind} {obj.key} was modified (have version "
                f"{obj.metadata.resourceVersion}, stored {stored_version})"
            )
        return current

    def _init_metadata(self, doc: dict) -> None:
        meta = doc["metadata"]
        meta["uid"] = str(uuid.uuid4())
        meta["generation"] = 1
        meta["creationTimestamp"] = _now()
        meta["deletionTimestamp"] = None

    async def _write(self, kind: str, doc: dict) -> None:
        self._version += 1
        meta = doc["metadata"]
        meta["resourceVersion"] = self._version
        db = self._conn()
        await db.execute(
            "INSERT OR REPLACE INTO objects (kind, namespace, name, uid, resource_version, body) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (kind, meta["namespace"], meta["name"], meta["uid"], self._version, json.dumps(doc)),
        )
        await db.commit()

    async def _delete_doc(self, kind: str, doc: dict, events: list) -> None:
        meta = doc["metadata"]
        if meta["finalizers"]:
            if meta["deletionTimestamp"] is None:
                meta["deletionTimestamp"] = _now()
                await self._write(kind, doc)
                events.append((MODIFIED, kind, doc))
            return
        await self._remove(kind, doc, events)

    async def _remove(self, kind: str, doc: dict, events: list) -> None:
        meta = doc["metadata"]
        db = self._conn()
        await db.execute(
            "DELETE FROM objects WHERE kind = ? AND namespace = ? AND name = ?",
            (kind, meta["namespace"], meta["name"]),
        )
        await db.commit()
        events.append((DELETED, kind, doc))
        logger.debug("Removed %s %s", kind, object_key(meta["namespace"], meta["name"]))
        await self._collect_garbage(meta["uid"], events)

    async def _collect_garbage(self, owner_uid: str, events: list) -> None:
        """Delete dependents whose owners are all gone."""
        db = self._conn()
        async with db.execute(
            "SELECT kind, body FROM objects WHERE body LIKE ?", (f'%"{owner_uid}"%',)
        ) as cur:
            rows = await cur.fetchall()

        for kind, body in rows:
            doc = json.loads(body)
            refs = doc["metadata"]["ownerReferences"]
            if not any(ref["uid"] == owner_uid for ref in refs):
                continue
            live = [ref for ref in refs if ref["uid"] != owner_uid and await self._uid_exists(ref["uid"])]
            if live:
                continue
            logger.debug(
                "Collecting %s %s (owner %s gone)",
                kind,
                object_key(doc["metadata"]["namespace"], doc["metadata"]["name"]),
                owner_uid,
            )
            await self._delete_doc(kind, doc, events)

    async def _uid_exists(self, uid: str) -> bool:
        async with self._conn().execute("SELECT 1 FROM objects WHERE uid = ?", (uid,)) as cur:
            return (await cur.fetchone()) is not None

    def _emit(self, events: list[tuple[str, str, dict]]) -> None:
        for event_type, kind, doc in events:
            watches = self._watches.get(kind)
            if not watches:
                continue
            event = WatchEvent(event_type, KINDS[kind].model_validate(doc))
            for watch in list(watches):
                watch.push(event)


def _field_paths(cls: type[Resource], applied: dict) -> dict[str, Any]:
    """Flatten applied content into owned field paths (one level into nested models)."""
    paths: dict[str, Any] = {}
    for field in cls.content_fields():
        if field not in applied:
            continue
        annotation = cls.model_fields[field].annotation
        value = applied[field]
        if isinstance(annotation, type) and issubclass(annotation, BaseModel) and isinstance(value, dict):
            for sub, sub_value in value.items():
                paths[f"{field}.{sub}"] = sub_value
        else:
            paths[field] = value
    return paths


def _get_path(doc: dict, path: str) -> Any:
    node: Any = doc
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _set_path(doc: dict, path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = doc
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value
