import re

from markupsafe import escape

from app.models import Visibility

_KEY_ID = r"(?:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]+)"

_UNITS = (
    ("day", 24 * 60 * 60),
    ("hour", 60 * 60),
    ("minute", 60),
    ("second", 1),
)


def format_file_name(key: str, visibility: Visibility = Visibility.PUBLIC) -> str:
    """Strip the ``{prefix}/{id}-`` part of a storage key, leaving the uploaded name."""
    pattern = rf"^{re.escape(visibility.prefix)}/{_KEY_ID}-"
    return re.sub(pattern, "", key, count=1)


def format_expiry(seconds: int) -> str:
    for unit, size in _UNITS:
        if seconds >= size or unit == "second":
            amount = seconds // size
            return f"{amount} {unit}" if amount == 1 else f"{amount} {unit}s"


def render_link_email(file_name: str, url: str, expiry_seconds: int) -> tuple[str, str]:
    subject = f'Your Secure Download Link for "{file_name}"'
    html = f"""
<div style="font-family: sans-serif; color: #333; padding: 20px;">
  <h2>Here's your secure file link</h2>
  <p>You requested access to the file <strong>{escape(file_name)}</strong>.</p>
  <p>This link will expire in <strong>{format_expiry(expiry_seconds)}</strong>.</p>
  <p>
    <a href="{escape(url)}" style="display:inline-block;padding:10px 15px;background-color:#2563eb;color:white;text-decoration:none;border-radius:5px;margin-top:10px;">
      Download File
    </a>
  </p>
  <p style="font-size: 0.875rem; color: #666;">If you did not request this, you can ignore this email.</p>
</div>
"""
    return subject, html.strip()
