"""
Wire boundary of the extraction gateway.

Request:  {"imageBase64": "<base64 or data URL>" | null, "mimeType": "..."}
Response: {"success": true, "extractedData": {...}}
       or {"success": false, "error": "<message>"}
"""

from typing import Optional

import structlog

from bookkeeper.errors import BookkeeperError
from bookkeeper.models.statement import ExtractionResponse
from bookkeeper.services.extraction.gemini_service import GeminiStatementExtractor
from bookkeeper.services.intake import DocumentIntake


logger = structlog.get_logger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"
REQUEST_FILENAME = "statement"


async def handle_extraction_request(
    payload: dict,
    extractor: GeminiStatementExtractor,
    intake: Optional[DocumentIntake] = None,
) -> dict:
    """
    Run one extraction request and return the wire response.

    Never raises: every failure becomes `{"success": false, "error": ...}`.
    """
    image = payload.get("imageBase64") if isinstance(payload, dict) else None

    try:
        document = None
        if image:
            intake = intake or DocumentIntake()
            mime_type = payload.get("mimeType")
            if not mime_type and not image.startswith("data:"):
                mime_type = DEFAULT_MIME_TYPE
            document = intake.encode(REQUEST_FILENAME, image, mime_type)

        statement = await extractor.extract(document)
        response = ExtractionResponse(success=True, extracted_data=statement)
    except BookkeeperError as e:
        logger.warning("extraction_request_failed", error_type=type(e).__name__, error=str(e))
        response = ExtractionResponse(success=False, error=e.user_message)
    except Exception as e:
        logger.exception("extraction_request_crashed", error=str(e))
        response = ExtractionResponse(success=False, error="Unexpected error while extracting statement.")

    return response.to_wire()
