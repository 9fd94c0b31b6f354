import httpx

from app.errors import EmailDeliveryError
from app.logger import logger


class ResendMailer:
    """Transactional email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        base_url: str = "https://api.resend.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def send(self, *, to: list[str], subject: str, html: str) -> str | None:
        payload = {"from": self.sender, "to": to, "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.post(f"{self.base_url}/emails", json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                message = _provider_message(exc.response)
                logger.error(f"[mail] provider rejected message ({exc.response.status_code}): {message}")
                raise EmailDeliveryError(message) from exc
            except httpx.HTTPError as exc:
                logger.error(f"[mail] request failed: {exc}")
                raise EmailDeliveryError(str(exc) or exc.__class__.__name__) from exc

        try:
            message_id = response.json().get("id")
        except (ValueError, AttributeError):
            message_id = None
        logger.info(f"[mail] sent {message_id} to {len(to)} recipient(s)")
        return message_id


def _provider_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"
