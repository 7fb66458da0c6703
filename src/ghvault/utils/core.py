import asyncio
import logging

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from ghvault.storage.blob import seal, unseal
from ghvault.storage.index import Listing, MetadataIndex
from ghvault.storage.remote import RemoteStore
from ghvault.utils.config import Session
from ghvault.utils.dataModels import MetadataRecord, PlainFile, RemoteObject
from ghvault.utils.errors import AuthorizationError, ConflictError, FormatError, NotFoundError, TransientError, VaultError
from ghvault.utils.helper import display_name, guess_mime_type, iso_now, now_millis, stored_path_for

logger = logging.getLogger(__name__)

ProgressSink = Callable[[float], None]
FileProgressSink = Callable[[str, float], None]


class TransferState(str, Enum):
    QUEUED = "queued"
    ENCRYPTING = "encrypting"
    UPLOADING = "uploading"
    INDEXING = "indexing"
    DOWNLOADING = "downloading"
    DECRYPTING = "decrypting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class UploadRequest:
    file: PlainFile
    encrypt: bool = False
    passphrase: str | bytes | None = None
    password_hint: str | None = None


@dataclass
class TransferItem:
    name: str
    state: TransferState = TransferState.QUEUED
    percent: float = 0.0
    history: List[TransferState] = field(default_factory=lambda: [TransferState.QUEUED])
    reason: str | None = None
    stored_path: str | None = None
    file: PlainFile | None = None
    object: RemoteObject | None = None
    _sink: Optional[ProgressSink] = field(default=None, repr=False)

    def advance(self, state: TransferState, percent: float | None = None) -> None:
        if state != self.state:
            self.state = state
            self.history.append(state)
        if percent is not None and percent > self.percent:
            self.percent = percent
            if self._sink:
                self._sink(percent)

    def fail(self, reason: str) -> None:
        self.reason = reason
        self.advance(TransferState.FAILED)


@dataclass
class BatchResult:
    succeeded: List[TransferItem] = field(default_factory=list)
    failed: List[TransferItem] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class StorageStats:
    files: int
    total_bytes: int
    encrypted: int


class TransferOrchestrator:
    """Sequential upload/download queues over the store and the metadata index.

    Items run one at a time. A failing item is recorded and the batch moves on,
    except after an AuthorizationError, which fails everything still queued.
    """

    def __init__(
        self,
        store: RemoteStore,
        index: MetadataIndex,
        session: Session,
        *,
        max_retries: int = 3,
        base_delay: float = 0.5,
        index_plain_uploads: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.index = index
        self.session = session
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.index_plain_uploads = index_plain_uploads
        self._sleep = sleep
        self._last_stamp = 0

    async def _with_retry(self, label: str, func, *args, **kwargs):
        """Run `func`, retrying TransientError with exponential backoff."""
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except TransientError as e:
                if attempt >= self.max_retries:
                    raise
                delay = self.base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(f"{label}: {e}; retry {attempt}/{self.max_retries} in {delay:.2f}s")
                await self._sleep(delay)

    async def open(self) -> List[MetadataRecord]:
        """Read the index once at session start. A corrupt index degrades to empty."""
        try:
            return await self._with_retry("load index", self.index.load)
        except FormatError as e:
            logger.warning(f"Metadata index unreadable, continuing without it: {e}")
            return []

    # Upload

    def _next_stamp(self) -> int:
        """Upload time in millis, strictly increasing so paths never repeat in a session."""
        stamp = max(now_millis(), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    async def _store_new(self, path: str, payload: bytes, message: str) -> RemoteObject:
        try:
            return await self._with_retry(
                f"upload {path}", self.store.put, path, payload, message, must_not_exist=True
            )
        except ConflictError:
            # a retried create may already have landed
            existing = await self._with_retry(f"check {path}", self.store.get, path)
            if existing is None or existing.content != payload:
                raise
            logger.info(f"{path} already stored by an earlier attempt")
            return existing

    async def upload_file(self, request: UploadRequest, item: TransferItem | None = None) -> TransferItem:
        file = request.file
        item = item or TransferItem(name=file.name)
        if request.encrypt and not request.passphrase:
            raise ValueError(f"{file.name}: encryption requested without a passphrase")

        payload = file.content
        if request.encrypt:
            item.advance(TransferState.ENCRYPTING, 10)
            payload = await asyncio.to_thread(seal, file, request.passphrase)
            item.advance(TransferState.ENCRYPTING, 40)

        stamp = self._next_stamp()
        path = stored_path_for(self.store.config.files_dir, file.name, request.encrypt, millis=stamp)
        item.stored_path = path
        item.advance(TransferState.UPLOADING, 50)
        label = "Upload encrypted" if request.encrypt else "Upload"
        obj = await self._store_new(path, payload, f"{label}: {file.name}")
        item.object = obj
        item.advance(TransferState.UPLOADING, 90)

        if request.encrypt or self.index_plain_uploads:
            item.advance(TransferState.INDEXING, 95)
            record = MetadataRecord(
                file_name=file.name,
                file_type=file.mime_type,
                file_size=file.size,
                upload_timestamp=stamp,
                stored_path=obj.path,
                encrypted=request.encrypt,
                password_hint=request.password_hint,
                uploaded_by=self.session.user_type,
                upload_date=iso_now(),
                revision=obj.revision,
            )
            await self._with_retry(f"index {path}", self.index.append, record)

        item.advance(TransferState.DONE, 100)
        logger.info(f"Uploaded {file.name} -> {path}")
        return item

    # Download

    async def download_file(
        self, path: str, passphrase: str | bytes | None = None, item: TransferItem | None = None
    ) -> TransferItem:
        item = item or TransferItem(name=display_name(path))
        item.stored_path = path
        item.advance(TransferState.DOWNLOADING, 10)
        obj = await self._with_retry(f"download {path}", self.store.get, path)
        if obj is None:
            raise NotFoundError(f"{path} does not exist", status=404, path=path)
        item.object = obj
        item.advance(TransferState.DOWNLOADING, 60)

        record = self.index.find(path)
        encrypted = record.encrypted if record else obj.encrypted
        if encrypted and passphrase:
            item.advance(TransferState.DECRYPTING, 70)
            item.file = await asyncio.to_thread(unseal, obj.content or b"", passphrase)
        elif encrypted:
            item.file = PlainFile(name=obj.name, mime_type="application/octet-stream", content=obj.content or b"")
        else:
            name = record.file_name if record else display_name(path)
            mime = (record.file_type if record else "") or guess_mime_type(name)
            item.file = PlainFile(name=name, mime_type=mime, content=obj.content or b"")

        item.advance(TransferState.DONE, 100)
        return item

    # Batches

    async def _run_batch(self, items: List[TransferItem], work, on_progress, on_file_progress) -> BatchResult:
        result = BatchResult()
        total = len(items)
        fatal: str | None = None

        for i, item in enumerate(items):
            if fatal:
                item.fail(fatal)
                result.failed.append(item)
                continue

            def sink(pct: float, i=i, item=item) -> None:
                if on_file_progress:
                    on_file_progress(item.name, pct)
                if on_progress:
                    on_progress((i + pct / 100) / total * 100)

            item._sink = sink
            try:
                await work(i, item)
                result.succeeded.append(item)
            except AuthorizationError as e:
                fatal = str(e)
                item.fail(fatal)
                result.failed.append(item)
                logger.error(f"{item.name}: {e}; abandoning the rest of the batch")
            except (VaultError, ValueError) as e:
                item.fail(str(e))
                result.failed.append(item)
                logger.error(f"{item.name}: {e}")
            finally:
                item._sink = None
            if on_progress:
                on_progress((i + 1) / total * 100)
        return result

    async def upload_batch(
        self,
        requests: Sequence[UploadRequest],
        on_progress: Optional[ProgressSink] = None,
        on_file_progress: Optional[FileProgressSink] = None,
    ) -> BatchResult:
        items = [TransferItem(name=r.file.name) for r in requests]

        async def work(i: int, item: TransferItem) -> None:
            await self.upload_file(requests[i], item)

        return await self._run_batch(items, work, on_progress, on_file_progress)

    async def download_batch(
        self,
        paths: Sequence[str],
        passphrase: str | bytes | None = None,
        on_progress: Optional[ProgressSink] = None,
        on_file_progress: Optional[FileProgressSink] = None,
    ) -> BatchResult:
        items = [TransferItem(name=display_name(p)) for p in paths]

        async def work(i: int, item: TransferItem) -> None:
            await self.download_file(paths[i], passphrase, item)

        return await self._run_batch(items, work, on_progress, on_file_progress)

    # Maintenance

    async def delete_file(self, path: str) -> None:
        obj = await self._with_retry(f"lookup {path}", self.store.get, path)
        if obj is None:
            raise NotFoundError(f"{path} does not exist", status=404, path=path)
        try:
            await self._with_retry(
                f"delete {path}", self.store.delete, path, f"Delete: {display_name(path)}", obj.revision
            )
        except NotFoundError:
            # an earlier attempt removed it and its response was lost
            logger.info(f"{path} already deleted, dropping its record")
        await self._with_retry(f"unindex {path}", self.index.remove_by_path, path)

    async def list_files(self, directory: str | None = None) -> List[Listing]:
        return await self._with_retry("list", self.index.listing, directory)

    async def stats(self, directory: str | None = None) -> StorageStats:
        listing = await self.list_files(directory)
        return StorageStats(
            files=len(listing),
            total_bytes=sum(entry.object.size for entry in listing),
            encrypted=sum(1 for entry in listing if entry.object.encrypted or (entry.record and entry.record.encrypted)),
        )
