from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"

    @property
    def prefix(self) -> str:
        return "uploads" if self is Visibility.PUBLIC else "private"

    @property
    def acl(self) -> str | None:
        return "public-read" if self is Visibility.PUBLIC else None


class FileRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    url: str | None = None
    size: int
    last_modified: datetime = Field(alias="lastModified")


class FileListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    files: list[FileRecord]
    next_cursor: str | None = Field(default=None, alias="nextCursor")


class UploadResponse(BaseModel):
    urls: list[str]


class MessageResponse(BaseModel):
    message: str


class DeleteRequest(BaseModel):
    key: str = Field(min_length=1)


class LoginRequest(BaseModel):
    username: str
    password: str


class LinkResponse(BaseModel):
    url: str
    message: str | None = None
    error: str | None = None
    details: str | None = None
