import asyncio
from collections.abc import AsyncIterator
from uuid import uuid4

from starlette.concurrency import run_in_threadpool

from app.errors import FileShareError, FileTooLarge, MalformedUpload, UploadFailed
from app.logger import logger
from app.models import Visibility
from app.multipart import FilePart, MultipartFileStream
from app.storage import ObjectStore

WriteOutcome = tuple[str, Exception | None]


def build_object_key(visibility: Visibility, filename: str) -> str:
    return f"{visibility.prefix}/{uuid4()}-{filename}"


def _pick_failure(group: BaseExceptionGroup) -> FileShareError:
    for kind in (FileTooLarge, MalformedUpload, UploadFailed):
        matched = group.subgroup(kind)
        if matched is not None:
            first = matched.exceptions[0]
            while isinstance(first, BaseExceptionGroup):
                first = first.exceptions[0]
            return first
    return UploadFailed()


def _landed(writes: list[tuple[str, asyncio.Task]]) -> list[str]:
    """Keys that may be in the store after an aborted batch.

    A cancelled write still ran to completion on its worker thread, so its
    key counts as landed; deleting a key that was never written is harmless.
    """
    keys = []
    for key, task in writes:
        if task.cancelled() or task.result()[1] is None:
            keys.append(key)
    return keys


class UploadPipeline:
    """Writes every file of one multipart request into a bucket.

    Each file becomes its own store write as soon as it has been fully read,
    and the writes run concurrently. The call returns only after every write
    has settled; one failure fails the whole batch. Writes that already
    landed are left in place unless ``rollback`` is set.
    """

    def __init__(self, store: ObjectStore, visibility: Visibility, *, max_file_size: int, rollback: bool = False):
        self.store = store
        self.visibility = visibility
        self.max_file_size = max_file_size
        self.rollback = rollback

    async def ingest(self, content_type: str, stream: AsyncIterator[bytes]) -> list[str]:
        """Return the public URLs (public tier) or keys (private tier) in upload order."""
        reader = MultipartFileStream(content_type, max_file_size=self.max_file_size)
        writes: list[tuple[str, asyncio.Task]] = []
        try:
            async with asyncio.TaskGroup() as group:
                async for part in reader.files(stream):
                    logger.info(
                        f"[upload] received {part.filename!r} ({part.size} bytes, {part.content_type})"
                    )
                    key = build_object_key(self.visibility, part.filename)
                    writes.append((key, group.create_task(self._write(key, part))))
        except BaseExceptionGroup as exc:
            # only the parsing side raises into the group; writes report through their outcome
            failure = _pick_failure(exc)
            logger.error(f"[upload] {self.visibility.value} batch aborted: {failure.message}")
            await self._discard(_landed(writes))
            raise failure from None

        outcomes: list[WriteOutcome] = [task.result() for _, task in writes]
        failed = [key for key, error in outcomes if error is not None]
        if failed:
            logger.error(
                f"[upload] {self.visibility.value} batch failed: {len(failed)} of {len(outcomes)} write(s) rejected"
            )
            await self._discard([key for key, error in outcomes if error is None])
            raise UploadFailed()

        logger.info(f"[upload] {self.visibility.value} batch complete, {len(outcomes)} file(s)")
        keys = [key for key, _ in outcomes]
        if self.visibility is Visibility.PUBLIC:
            return [self.store.public_url(key) for key in keys]
        return keys

    async def _write(self, key: str, part: FilePart) -> WriteOutcome:
        put = asyncio.ensure_future(
            run_in_threadpool(self.store.put_object, key, part.data, part.content_type, self.visibility.acl)
        )
        try:
            await asyncio.shield(put)
        except asyncio.CancelledError:
            # the worker thread cannot be stopped; let it finish before the task ends
            await asyncio.gather(put, return_exceptions=True)
            raise
        except Exception as exc:
            logger.error(f"[upload] write of {key} failed: {exc}")
            return key, exc
        return key, None

    async def _discard(self, keys: list[str]) -> None:
        if not self.rollback or not keys:
            return
        for key in keys:
            try:
                await run_in_threadpool(self.store.delete_object, key)
            except FileShareError as exc:
                logger.warning(f"[upload] rollback could not delete {key}: {exc.message}")
            else:
                logger.info(f"[upload] rolled back {key}")
