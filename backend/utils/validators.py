"""
Input validation utilities shared by services.
"""
import re
from pathlib import PurePosixPath

from domain.errors import ValidationError
from domain.constants import IMAGE_EXTENSIONS, IMAGE_SUFFIX_ALIASES, MAX_PASSWORD_BYTES, MIN_PASSWORD_LENGTH

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str | None) -> str:
    """
    Lower-case and validate an e-mail address.

    Raises:
        ValidationError(400) if the address is missing or malformed
    """
    if not email:
        raise ValidationError("E-mail is required", field="email")
    email = email.strip().lower()
    if len(email) > 254 or not _EMAIL_RE.match(email):
        raise ValidationError("Invalid e-mail address", field="email")
    return email


def validate_password(password: str | None) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            field="password",
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
            field="password",
        )
    return password


def image_content_type(content_type: str | None) -> str | None:
    """Normalized MIME type if it is an accepted image type, else None."""
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime if mime in IMAGE_EXTENSIONS else None


def file_extension(filename: str | None, content_type: str | None) -> str:
    """
    Extension for a stored upload, decided by the (allow-listed) content type.

    The filename suffix is only kept when it names the same image type, so a
    client cannot choose what the static mount serves the object as.

    >>> file_extension("capture.JPEG", "image/jpeg")
    'jpeg'
    >>> file_extension("page.html", "image/png")
    'png'

    Raises:
        ValidationError(400) for anything but PNG, JPEG, WebP or GIF
    """
    mime = image_content_type(content_type)
    if mime is None:
        raise ValidationError("Only PNG, JPEG, WebP or GIF images are accepted", field="file")
    ext = IMAGE_EXTENSIONS[mime]
    if filename:
        suffix = PurePosixPath(filename).suffix.lstrip(".").lower()
        if suffix in IMAGE_SUFFIX_ALIASES.get(ext, {ext}):
            return suffix
    return ext
