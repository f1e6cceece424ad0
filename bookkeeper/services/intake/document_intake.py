"""
Document Intake

First stop for every upload. A file is either accepted and encoded as a
single base64 payload, or rejected with a message before anything is sent
to the extraction model.

Checks:
1. Non-empty
2. Size within MAX_UPLOAD_SIZE_MB
3. MIME type one of JPEG / PNG / PDF
4. Image uploads must actually decode as an image (PIL)
"""

import base64
import binascii
from io import BytesIO
from typing import Optional, Union

import structlog
from PIL import Image, UnidentifiedImageError

from bookkeeper.config import get_settings
from bookkeeper.errors import ValidationError
from bookkeeper.models.statement import EncodedDocument


logger = structlog.get_logger(__name__)

DATA_URL_MARKER = ";base64,"


def split_data_url(value: str) -> tuple[Optional[str], str]:
    """
    Split a `data:<mime>;base64,<payload>` string.

    Returns (mime_type, payload). A plain base64 string comes back with a
    None MIME type.
    """
    if value.startswith("data:") and DATA_URL_MARKER in value:
        header, payload = value.split(DATA_URL_MARKER, 1)
        return header[len("data:"):] or None, payload
    return None, value


class DocumentIntake:
    """
    Validates and encodes uploaded statement files.

    Stateless apart from its limits, which come from AppSettings unless
    given explicitly.
    """

    def __init__(
        self,
        max_size_bytes: Optional[int] = None,
        allowed_types: Optional[list[str]] = None,
    ):
        if max_size_bytes is None or allowed_types is None:
            app = get_settings().app
            max_size_bytes = max_size_bytes if max_size_bytes is not None else app.max_upload_size_bytes
            allowed_types = allowed_types if allowed_types is not None else app.supported_types_list
        self.max_size_bytes = max_size_bytes
        self.allowed_types = [t.lower() for t in allowed_types]

    def check(self, filename: str, size: int, mime_type: str) -> tuple[bool, str]:
        """
        Decide whether a file may be uploaded.

        Reports instead of raising so the UI can show the reason inline.
        """
        if size <= 0:
            return False, f"{filename} is empty."
        if size > self.max_size_bytes:
            limit_mb = self.max_size_bytes / (1024 * 1024)
            return False, f"{filename} is larger than {limit_mb:g} MB."
        if (mime_type or "").lower() not in self.allowed_types:
            return False, (
                f"{filename} has unsupported type {mime_type or 'unknown'}. "
                "Please upload a JPEG, PNG or PDF."
            )
        return True, "OK"

    def encode(
        self,
        filename: str,
        data: Union[bytes, str],
        mime_type: Optional[str] = None,
    ) -> EncodedDocument:
        """
        Validate a file and encode it for the extraction model.

        `data` is either raw bytes or a base64 string, optionally with a
        `data:` URL prefix (which is stripped).

        Raises:
            ValidationError: If the file is rejected
        """
        if isinstance(data, str):
            url_mime, payload = split_data_url(data.strip())
            mime_type = mime_type or url_mime
            try:
                raw = base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError):
                raise ValidationError(
                    f"Invalid base64 payload for {filename}",
                    user_message=f"{filename} could not be read.",
                )
        else:
            raw = data

        ok, message = self.check(filename, len(raw), mime_type or "")
        if not ok:
            logger.info("document_rejected", filename=filename, reason=message)
            raise ValidationError(message)

        if mime_type.lower().startswith("image/"):
            self._verify_image(filename, raw)

        document = EncodedDocument(
            filename=filename,
            mime_type=mime_type.lower(),
            size_bytes=len(raw),
            base64_data=base64.b64encode(raw).decode("ascii"),
        )
        logger.info(
            "document_encoded",
            document_id=str(document.document_id),
            filename=filename,
            size=document.size_bytes,
            mime_type=document.mime_type,
        )
        return document

    def _verify_image(self, filename: str, raw: bytes) -> None:
        try:
            with Image.open(BytesIO(raw)) as img:
                img.verify()
        except Image.DecompressionBombError as e:
            logger.info("document_too_many_pixels", filename=filename, error=str(e))
            raise ValidationError(
                f"{filename} exceeds the pixel limit: {e}",
                user_message=f"{filename} is too large an image to process.",
            )
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            logger.info("document_not_an_image", filename=filename, error=str(e))
            raise ValidationError(
                f"{filename} is not a readable image: {e}",
                user_message=f"{filename} does not look like a valid image.",
            )
