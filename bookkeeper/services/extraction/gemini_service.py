"""
Statement Extraction using Gemini Vision

Gemini reads the statement image (or PDF) and replies with the
transactions as JSON. The reply is normalized into an ExtractedStatement
that the user reviews before anything is saved.

There is no retry here: a failed extraction is reported to the user, who
re-uploads. There is also no fallback to sample data when a document was
supplied; sample data is only returned when no document is given at all.
"""

import base64
import binascii
from datetime import date
from typing import Any, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError as SettingsValidationError

from bookkeeper.config import get_settings
from bookkeeper.errors import ConfigurationError, ParseError, UpstreamError
from bookkeeper.models.statement import EncodedDocument, ExtractedStatement
from bookkeeper.services.extraction.normalizer import (
    build_sample_statement,
    normalize_statement,
    parse_model_output,
)
from bookkeeper.services.extraction.prompt import EXTRACTION_PROMPT


logger = structlog.get_logger(__name__)


class GeminiStatementExtractor:
    """
    Extraction gateway backed by a Gemini generative model.

    Stateless between calls. The model is created on first use so that
    sample extraction works without a GEMINI_API_KEY.

    Args:
        model: Anything exposing `generate_content_async(contents)`.
            Defaults to a GenerativeModel built from GeminiSettings.
        period_days: Window used when the statement period is missing.
    """

    def __init__(self, model: Any = None, period_days: Optional[int] = None):
        self._model = model
        if period_days is None:
            period_days = get_settings().app.default_period_days
        self._period_days = period_days

    def _get_model(self) -> Any:
        if self._model is None:
            try:
                settings = get_settings().gemini
            except SettingsValidationError as e:
                raise ConfigurationError(
                    f"Gemini API key not configured: {e}",
                    user_message="Gemini API key not configured.",
                )
            genai.configure(api_key=settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=settings.model_name,
                generation_config={
                    "temperature": settings.temperature,
                    "top_k": settings.top_k,
                    "top_p": settings.top_p,
                    "max_output_tokens": settings.max_tokens,
                },
            )
        return self._model

    async def extract(
        self,
        document: Optional[EncodedDocument] = None,
        today: Optional[date] = None,
    ) -> ExtractedStatement:
        """
        Extract a statement from a document.

        With no document, returns the tagged sample statement without
        calling the model.

        Raises:
            ConfigurationError: No Gemini API key
            UpstreamError: The model call failed
            ParseError: The reply held no usable JSON object
        """
        if document is None:
            logger.info("sample_statement_returned")
            return build_sample_statement(today=today, period_days=self._period_days)

        model = self._get_model()

        try:
            data = base64.b64decode(document.base64_data)
        except (binascii.Error, ValueError) as e:
            raise ParseError(f"Document payload is not valid base64: {e}")

        logger.info(
            "extraction_started",
            document_id=str(document.document_id),
            mime_type=document.mime_type,
            size=document.size_bytes,
        )

        try:
            response = await model.generate_content_async([
                EXTRACTION_PROMPT,
                {"mime_type": document.mime_type, "data": data},
            ])
        except google_exceptions.GoogleAPICallError as e:
            # code is an HTTPStatus, or None for gRPC-only errors
            status = int(e.code) if e.code is not None else None
            logger.error(
                "gemini_api_error",
                status=status,
                error=e.message,
                document_id=str(document.document_id),
            )
            raise UpstreamError(
                f"Gemini API error: {e.message}",
                status=status,
                body=e.message,
                user_message="Failed to process bank statement with Gemini API.",
            )

        text = self._response_text(response)
        raw = parse_model_output(text)
        statement = normalize_statement(raw, today=today, period_days=self._period_days)

        logger.info(
            "extraction_completed",
            document_id=str(document.document_id),
            extraction_id=str(statement.extraction_id),
            transaction_count=len(statement.transactions),
        )
        return statement

    @staticmethod
    def _response_text(response: Any) -> str:
        # .text raises ValueError when the reply has no text part (e.g. blocked)
        try:
            return response.text or ""
        except ValueError:
            logger.warning("gemini_empty_response")
            return ""
