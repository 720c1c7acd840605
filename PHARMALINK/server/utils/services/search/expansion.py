from __future__ import annotations

import asyncio
import json
import time
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from PHARMALINK.server.schemas.drugs import ExternalDrugRequest
from PHARMALINK.server.utils.configurations import ExpansionCacheSettings
from PHARMALINK.server.utils.constants import EXPANSION_CACHE_VERSION, EXPANSION_ID_PREFIX
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.errors import StorageError, StorageQuotaError
from PHARMALINK.server.utils.services.lifecycle import ServiceLifecycle
from PHARMALINK.server.utils.services.search.formulary import (
    FormularyRecord,
    resolve_route,
)
from PHARMALINK.server.utils.services.text.normalization import normalize, normalize_code

if TYPE_CHECKING:
    from PHARMALINK.server.database.database import KeyValueBackend

DAY_SECONDS = 86_400.0


###############################################################################
class ExpansionCacheEntry(BaseModel):
    """Persisted externally sourced drug. Camel-case keys from legacy blobs are accepted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    active_ingredient: str = Field(
        "", validation_alias=AliasChoices("active_ingredient", "activeIngredient")
    )
    dosage: str = ""
    form: str = ""
    route: str = "oral"
    prescription_required: bool = Field(
        True,
        validation_alias=AliasChoices("prescription_required", "prescriptionRequired"),
    )
    atc_code: str = Field("", validation_alias=AliasChoices("atc_code", "atcCode"))
    added_at: float = Field(0.0, validation_alias=AliasChoices("added_at", "addedAt"))
    last_used_at: float = Field(
        0.0, validation_alias=AliasChoices("last_used_at", "lastUsedAt")
    )
    usage_count: int = Field(0, validation_alias=AliasChoices("usage_count", "usageCount"))
    source_type: str = Field(
        "external", validation_alias=AliasChoices("source_type", "sourceType")
    )
    original_id: str = Field("", validation_alias=AliasChoices("original_id", "originalId"))

    # -------------------------------------------------------------------------
    def to_record(self) -> FormularyRecord:
        return FormularyRecord(
            id=self.id,
            name=self.name,
            active_ingredient=self.active_ingredient,
            atc_code=normalize_code(self.atc_code),
            in_market=False,
            search_name=normalize(self.name),
            search_ingredient=normalize(self.active_ingredient),
            dosage=self.dosage,
            form=self.form,
            route=self.route,
            prescription_required=self.prescription_required,
            source="expansion",
        )


###############################################################################
class ExpansionCacheBlob(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int | None = None
    updated_at: float = Field(0.0, validation_alias=AliasChoices("updated_at", "updatedAt"))
    drugs: list[dict[str, Any]] = Field(default_factory=list)


###############################################################################
class ExpansionCache:
    """LRU-bounded set of externally sourced drugs, persisted as one JSON blob.

    Entries are keyed by the external identifier and kept in recency order.
    Every mutation runs under one lock and returns with the size at or below
    capacity; persistence is scheduled in the background and never raises
    into the caller.

    """

    def __init__(
        self,
        store: KeyValueBackend,
        settings: ExpansionCacheSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock
        self.entries: OrderedDict[str, ExpansionCacheEntry] = OrderedDict()
        self.updated_at = 0.0
        self.lock = asyncio.Lock()
        self.pending: set[asyncio.Task[None]] = set()
        self.persist_queued = False
        self.lifecycle = ServiceLifecycle("expansion cache", self.load)

    # -------------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self.entries)

    # -------------------------------------------------------------------------
    @property
    def capacity(self) -> int:
        return self.settings.capacity

    # -------------------------------------------------------------------------
    async def load(self) -> None:
        raw = await asyncio.to_thread(self.store.get, self.settings.storage_key)
        self.entries = OrderedDict()
        if not raw:
            self.updated_at = self.clock()
            return
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable expansion cache blob")
            self.updated_at = self.clock()
            return
        blob = self.migrate(payload)
        self.updated_at = blob.updated_at or self.clock()
        skipped = 0
        for item in blob.drugs:
            try:
                entry = ExpansionCacheEntry.model_validate(item)
            except ValidationError:
                skipped += 1
                continue
            key = entry.original_id or entry.id
            self.entries.pop(key, None)
            self.entries[key] = entry
        if skipped:
            logger.warning("Skipped %d malformed expansion cache entries", skipped)
        self.enforce_capacity()
        logger.info("Loaded %d expansion cache entries", len(self.entries))

    # -------------------------------------------------------------------------
    def migrate(self, payload: Any) -> ExpansionCacheBlob:
        """Upgrade an unversioned blob, filling usage metadata with defaults."""
        if isinstance(payload, list):
            payload = {"drugs": payload}
        if not isinstance(payload, dict):
            return ExpansionCacheBlob(version=EXPANSION_CACHE_VERSION)
        try:
            blob = ExpansionCacheBlob.model_validate(payload)
        except ValidationError:
            logger.warning("Expansion cache blob has an unexpected layout, starting empty")
            return ExpansionCacheBlob(version=EXPANSION_CACHE_VERSION)
        if blob.version:
            return blob

        now = self.clock()
        drugs: list[dict[str, Any]] = []
        for item in blob.drugs:
            if not isinstance(item, dict):
                continue
            migrated = dict(item)
            added_at = migrated.get("added_at") or migrated.get("addedAt") or now
            migrated["added_at"] = added_at
            migrated["last_used_at"] = (
                migrated.get("last_used_at") or migrated.get("lastUsedAt") or now
            )
            migrated["usage_count"] = (
                migrated.get("usage_count") or migrated.get("usageCount") or 1
            )
            migrated["original_id"] = (
                migrated.get("original_id") or migrated.get("originalId") or migrated.get("id")
            )
            drugs.append(migrated)
        logger.info("Migrated %d entries from unversioned expansion cache", len(drugs))
        return ExpansionCacheBlob(
            version=EXPANSION_CACHE_VERSION, updated_at=now, drugs=drugs
        )

    # -------------------------------------------------------------------------
    async def add(self, drug: ExternalDrugRequest) -> ExpansionCacheEntry:
        await self.lifecycle.ensure_ready()
        async with self.lock:
            now = self.clock()
            existing = self.entries.pop(drug.id, None)
            if existing is not None:
                entry = existing.model_copy(
                    update={
                        "last_used_at": now,
                        "usage_count": existing.usage_count + 1,
                    }
                )
            else:
                entry = self.build_entry(drug, now)
            self.entries[drug.id] = entry
            self.enforce_capacity()
            self.updated_at = now
        self.schedule_persist()
        return entry

    # -------------------------------------------------------------------------
    @staticmethod
    def build_entry(drug: ExternalDrugRequest, now: float) -> ExpansionCacheEntry:
        return ExpansionCacheEntry(
            id=f"{EXPANSION_ID_PREFIX}{drug.id}",
            name=drug.name,
            active_ingredient=drug.active_ingredient,
            dosage=drug.dosage,
            form=drug.form,
            route=resolve_route(drug.route, drug.form, drug.name),
            prescription_required=drug.prescription_required,
            atc_code=normalize_code(drug.atc_code),
            added_at=now,
            last_used_at=now,
            usage_count=1,
            original_id=drug.id,
        )

    # -------------------------------------------------------------------------
    def find_key(self, drug_id: str) -> str | None:
        if drug_id in self.entries:
            return drug_id
        for key, entry in self.entries.items():
            if entry.id == drug_id:
                return key
        return None

    # -------------------------------------------------------------------------
    async def contains(self, drug_id: str) -> bool:
        await self.lifecycle.ensure_ready()
        return self.find_key(drug_id) is not None

    # -------------------------------------------------------------------------
    async def get(self, drug_id: str) -> ExpansionCacheEntry | None:
        await self.lifecycle.ensure_ready()
        key = self.find_key(drug_id)
        return self.entries.get(key) if key is not None else None

    # -------------------------------------------------------------------------
    async def remove(self, drug_id: str) -> bool:
        await self.lifecycle.ensure_ready()
        async with self.lock:
            key = self.find_key(drug_id)
            if key is None:
                return False
            del self.entries[key]
            self.updated_at = self.clock()
        self.schedule_persist()
        return True

    # -------------------------------------------------------------------------
    async def clear(self) -> None:
        await self.lifecycle.ensure_ready()
        async with self.lock:
            self.entries.clear()
            self.updated_at = self.clock()
        self.schedule_persist()

    # -------------------------------------------------------------------------
    async def prune(self) -> int:
        """Drop idle entries once the cache is mostly full; frequently used ones stay."""
        await self.lifecycle.ensure_ready()
        async with self.lock:
            if len(self.entries) < self.capacity * self.settings.prune_threshold:
                return 0
            cutoff = self.clock() - self.settings.prune_idle_days * DAY_SECONDS
            stale = [
                key
                for key, entry in self.entries.items()
                if entry.last_used_at <= cutoff
                and entry.usage_count <= self.settings.prune_min_usage
            ]
            for key in stale:
                del self.entries[key]
            if stale:
                self.updated_at = self.clock()
        if stale:
            logger.info("Pruned %d idle expansion cache entries", len(stale))
            self.schedule_persist()
        return len(stale)

    # -------------------------------------------------------------------------
    async def records(self) -> list[FormularyRecord]:
        await self.lifecycle.ensure_ready()
        return [entry.to_record() for entry in self.entries.values()]

    # -------------------------------------------------------------------------
    async def cached_entries(self) -> list[ExpansionCacheEntry]:
        await self.lifecycle.ensure_ready()
        return list(self.entries.values())

    # -------------------------------------------------------------------------
    async def stats(self) -> dict[str, Any]:
        await self.lifecycle.ensure_ready()
        stamps = sorted(entry.added_at for entry in self.entries.values())
        return {
            "count": len(stamps),
            "capacity": self.capacity,
            "oldest_added_at": to_datetime(stamps[0]) if stamps else None,
            "newest_added_at": to_datetime(stamps[-1]) if stamps else None,
        }

    # -------------------------------------------------------------------------
    def enforce_capacity(self) -> None:
        overflow = len(self.entries) - self.capacity
        if overflow > 0:
            self.evict(overflow)

    # -------------------------------------------------------------------------
    def evict(self, count: int) -> int:
        # stable sort keeps recency order among equal timestamps
        ranked = sorted(
            self.entries.items(),
            key=lambda item: (item[1].last_used_at, item[1].usage_count),
        )
        victims = [key for key, _ in ranked[: max(count, 0)]]
        for key in victims:
            del self.entries[key]
        return len(victims)

    # -------------------------------------------------------------------------
    def serialize(self) -> str:
        blob = {
            "version": EXPANSION_CACHE_VERSION,
            "updated_at": self.updated_at,
            "drugs": [entry.model_dump() for entry in self.entries.values()],
        }
        return json.dumps(blob, ensure_ascii=False)

    # -------------------------------------------------------------------------
    def schedule_persist(self) -> None:
        # one queued write covers every mutation made before it runs
        if self.persist_queued:
            return
        self.persist_queued = True
        task = asyncio.ensure_future(self.persist())
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)

    # -------------------------------------------------------------------------
    async def persist(self) -> None:
        async with self.lock:
            self.persist_queued = False
            try:
                await asyncio.to_thread(
                    self.store.set, self.settings.storage_key, self.serialize()
                )
                return
            except StorageQuotaError as exc:
                logger.warning(
                    "Expansion cache exceeds storage quota (%s), evicting %d entries",
                    exc,
                    self.settings.quota_eviction_batch,
                )
                self.evict(self.settings.quota_eviction_batch)
            except StorageError as exc:
                logger.error("Failed persisting expansion cache: %s", exc)
                return
            try:
                await asyncio.to_thread(
                    self.store.set, self.settings.storage_key, self.serialize()
                )
            except StorageError as exc:
                logger.error("Expansion cache still not persisted after eviction: %s", exc)

    # -------------------------------------------------------------------------
    async def flush(self) -> None:
        while self.pending:
            await asyncio.gather(*list(self.pending))


# -----------------------------------------------------------------------------
def to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


__all__ = ["ExpansionCache", "ExpansionCacheBlob", "ExpansionCacheEntry", "to_datetime"]
