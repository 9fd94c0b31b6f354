import re
from dataclasses import dataclass
from typing import Any

from starlette.concurrency import run_in_threadpool

from app.errors import EmailDeliveryError, FileShareError, InvalidRequest, ObjectNotFound, StorageError
from app.formatting import format_file_name, render_link_email
from app.logger import logger
from app.mailer import ResendMailer
from app.models import LinkResponse, Visibility
from app.storage import ObjectStore

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


@dataclass(frozen=True)
class LinkRequest:
    key: str
    expiry_seconds: int
    recipients: tuple[str, ...] = ()


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_PATTERN.fullmatch(value) is not None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_link_request(
    payload: Any,
    *,
    min_expiry: int,
    max_expiry: int,
    max_recipients: int,
) -> LinkRequest:
    """Validate a raw link request body; the first violated rule is reported."""
    if not isinstance(payload, dict):
        raise InvalidRequest("Invalid request. Key and expiry required.")

    key = payload.get("key")
    expiry = payload.get("expiry")
    if not isinstance(key, str) or not key or not _is_number(expiry):
        raise InvalidRequest("Invalid request. Key and expiry required.")
    if isinstance(expiry, float) and not expiry.is_integer():
        raise InvalidRequest("Expiry must be a whole number of seconds.")
    if expiry < min_expiry or expiry > max_expiry:
        raise InvalidRequest(f"Expiry must be between {min_expiry} and {max_expiry} seconds.")

    emails = payload.get("emails")
    recipients: tuple[str, ...] = ()
    if emails is not None:
        if not isinstance(emails, list) or not all(is_valid_email(email) for email in emails):
            raise InvalidRequest("Invalid email(s) provided.")
        recipients = tuple(dict.fromkeys(emails))
        if len(recipients) > max_recipients:
            raise InvalidRequest(f"Too many recipients. Maximum is {max_recipients}.")

    return LinkRequest(key=key, expiry_seconds=int(expiry), recipients=recipients)


class LinkIssuer:
    """Presigned download links for the private bucket, optionally emailed."""

    def __init__(
        self,
        store: ObjectStore,
        mailer: ResendMailer,
        *,
        min_expiry: int,
        max_expiry: int,
        max_recipients: int,
    ):
        self.store = store
        self.mailer = mailer
        self.min_expiry = min_expiry
        self.max_expiry = max_expiry
        self.max_recipients = max_recipients

    async def issue(self, payload: Any) -> LinkResponse:
        request = parse_link_request(
            payload,
            min_expiry=self.min_expiry,
            max_expiry=self.max_expiry,
            max_recipients=self.max_recipients,
        )

        try:
            if not await run_in_threadpool(self.store.exists, request.key):
                raise ObjectNotFound("File not found.")
            url = await run_in_threadpool(self.store.presign_get, request.key, request.expiry_seconds)
        except ObjectNotFound:
            raise
        except FileShareError as exc:
            logger.error(f"[link] presign failed for {request.key}: {exc.message}")
            raise StorageError("Failed to generate URL") from exc
        except Exception as exc:
            logger.exception(f"[link] unexpected failure for {request.key}")
            raise StorageError("Failed to generate URL") from exc

        logger.info(f"[link] issued {request.key} for {request.expiry_seconds}s")
        if not request.recipients:
            return LinkResponse(url=url)

        file_name = format_file_name(request.key, Visibility.PRIVATE)
        subject, html = render_link_email(file_name, url, request.expiry_seconds)
        try:
            await self.mailer.send(to=list(request.recipients), subject=subject, html=html)
        except EmailDeliveryError as exc:
            logger.warning(f"[link] email for {request.key} failed, returning link anyway: {exc}")
            return LinkResponse(url=url, error="Failed to send email", details=str(exc))

        return LinkResponse(
            url=url,
            message=f"Your download link has been sent to {', '.join(request.recipients)}.",
        )
