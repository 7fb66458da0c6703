"""
Metadata Index
==============

`metadata.json` maps human file names to storage paths and decryption hints.
It lives in the same remote store as the files and is updated with
read-current-revision -> put-with-that-revision. A conflicting writer forces a
reload and reapply, bounded to `max_attempts`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ghvault.storage.remote import RemoteStore
from ghvault.utils.dataModels import MetadataRecord, RemoteObject, records_from_bytes, records_to_bytes
from ghvault.utils.errors import ConflictError, FormatError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


@dataclass
class Listing:
    """One stored object with its index record, if any."""
    object: RemoteObject
    record: Optional[MetadataRecord] = None

    @property
    def orphaned(self) -> bool:
        return self.record is None


class MetadataIndex:

    def __init__(self, store: RemoteStore, path: str | None = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.store = store
        self.path = path or store.config.metadata_path
        self.max_attempts = max_attempts
        self.records: List[MetadataRecord] = []
        self.revision: Optional[str] = None

    async def _fetch(self) -> Tuple[List[MetadataRecord], Optional[str]]:
        obj = await self.store.get(self.path)
        if obj is None:
            return [], None
        return records_from_bytes(obj.content or b""), obj.revision

    async def load(self) -> List[MetadataRecord]:
        """Fetch the index. A missing index is an empty one; a corrupt one raises FormatError."""
        self.records, self.revision = await self._fetch()
        logger.debug(f"MetadataIndex: loaded {len(self.records)} records at {self.revision}")
        return list(self.records)

    async def _update(
        self,
        mutate: Callable[[List[MetadataRecord]], Optional[List[MetadataRecord]]],
        message: str,
    ) -> List[MetadataRecord]:
        """Reload, apply `mutate`, write back with the revision just read.

        `mutate` returns None when nothing needs writing.
        """
        for attempt in range(1, self.max_attempts + 1):
            records, revision = await self._fetch()
            updated = mutate(list(records))
            if updated is None:
                self.records, self.revision = records, revision
                return list(records)
            try:
                obj = await self.store.put(
                    self.path,
                    records_to_bytes(updated),
                    message,
                    expected_revision=revision,
                    must_not_exist=revision is None,
                )
            except ConflictError:
                logger.warning(f"MetadataIndex: {self.path} changed underneath us (attempt {attempt}/{self.max_attempts})")
                continue
            self.records, self.revision = updated, obj.revision
            return list(updated)
        raise ConflictError(
            f"{self.path}: gave up after {self.max_attempts} conflicting updates", path=self.path
        )

    async def append(self, record: MetadataRecord) -> List[MetadataRecord]:
        """Add a record unless one with the same stored path is already there."""
        def mutate(records: List[MetadataRecord]) -> Optional[List[MetadataRecord]]:
            if any(r.stored_path == record.stored_path for r in records):
                return None
            return records + [record]

        return await self._update(mutate, f"Update metadata: add {record.file_name}")

    async def remove_by_path(self, stored_path: str) -> List[MetadataRecord]:
        def mutate(records: List[MetadataRecord]) -> Optional[List[MetadataRecord]]:
            kept = [r for r in records if r.stored_path != stored_path]
            return kept if len(kept) != len(records) else None

        return await self._update(mutate, f"Update metadata: remove {stored_path}")

    def find(self, stored_path: str) -> Optional[MetadataRecord]:
        return next((r for r in self.records if r.stored_path == stored_path), None)

    def find_by_name(self, file_name: str) -> List[MetadataRecord]:
        return [r for r in self.records if r.file_name == file_name]

    async def listing(self, directory: str | None = None) -> List[Listing]:
        """Stored objects paired with their records.

        Objects without a record are listed bare. When the index is missing or
        corrupt every object is listed bare instead of failing.
        """
        if directory is None:
            directory = self.store.config.files_dir
        objects = await self.store.list(directory)
        try:
            await self.load()
        except FormatError as e:
            logger.warning(f"MetadataIndex: {self.path} is unreadable, listing raw objects from {directory}: {e}")
            self.records, self.revision = [], None
        by_path = {r.stored_path: r for r in self.records}
        return [Listing(object=o, record=by_path.get(o.path)) for o in objects if o.kind == "file"]
