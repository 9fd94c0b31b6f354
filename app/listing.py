from app.errors import InvalidRequest
from app.logger import logger
from app.models import FileListResponse, FileRecord, Visibility
from app.storage import ObjectStore


class FileCatalog:
    """Listing and deletion for one visibility tier."""

    def __init__(self, store: ObjectStore, visibility: Visibility, *, page_size: int):
        self.store = store
        self.visibility = visibility
        self.page_size = page_size

    def list_files(self, *, cursor: str | None = None, limit: int | None = None) -> FileListResponse:
        limit = min(limit or self.page_size, self.page_size)
        page = self.store.list_objects(f"{self.visibility.prefix}/", limit=limit, cursor=cursor)
        files = [
            FileRecord(
                key=obj.key,
                url=self.store.public_url(obj.key) if self.visibility is Visibility.PUBLIC else None,
                size=obj.size,
                last_modified=obj.last_modified,
            )
            for obj in page.objects
        ]
        return FileListResponse(files=files, next_cursor=page.next_cursor)

    def delete_file(self, key: str) -> None:
        prefix = f"{self.visibility.prefix}/"
        if not key.startswith(prefix) or key == prefix:
            raise InvalidRequest(f"Key must be inside the {prefix} folder.")
        self.store.delete_object(key)
        logger.info(f"[files] {self.visibility.value} file deleted: {key}")
