"""
Input normalization: turn an uploaded requirements file into plain text.

Plain-text uploads are decoded as UTF-8. Images (photos, scans, screenshots)
are run through Tesseract OCR. The OCR engine is created lazily, once per
process, and shared by every request.
"""
import io
import logging
import threading
from typing import Callable, Optional

import pytesseract
from PIL import Image, UnidentifiedImageError

from req2jira.config import settings
from req2jira.errors import ExtractionError

logger = logging.getLogger(__name__)


class OcrEngine:
    """Tesseract wrapper. Construction checks that the tesseract binary is usable."""

    def __init__(self, language: str = "eng"):
        self.language = language
        # Raises TesseractNotFoundError when the binary is missing
        self.version = pytesseract.get_tesseract_version()

    def recognize(self, image_bytes: bytes) -> str:
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                image.load()
                rgb = image.convert("RGB")
        except (UnidentifiedImageError, OSError) as e:
            raise ExtractionError("Uploaded image could not be read", detail=str(e))
        return pytesseract.image_to_string(rgb, lang=self.language)


class OcrEngineCell:
    """
    Initialize-once holder for the OCR engine.

    The first caller builds the engine while holding the lock; callers arriving
    during initialization block on the lock and then receive that same engine.
    A factory that raises leaves the cell empty so a later call can retry.
    """

    def __init__(self, factory: Callable[[], OcrEngine]):
        self._factory = factory
        self._lock = threading.Lock()
        self._engine: Optional[OcrEngine] = None

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    def get_or_init(self) -> OcrEngine:
        engine = self._engine
        if engine is not None:
            return engine
        with self._lock:
            if self._engine is None:
                logger.info("Initializing OCR engine")
                self._engine = self._factory()
                logger.info("OCR engine ready")
            return self._engine


_ocr_cell = OcrEngineCell(lambda: OcrEngine(language=settings.ocr_language))


def get_ocr_engine() -> OcrEngine:
    """Process-wide OCR engine."""
    return _ocr_cell.get_or_init()


def is_image_mime_type(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.strip().lower().startswith("image/")


def normalize(
    payload: bytes,
    mime_type: Optional[str],
    ocr_engine_provider: Callable[[], OcrEngine] = get_ocr_engine,
) -> str:
    """
    Produce a single text blob from an uploaded file.

    Args:
        payload: Raw file bytes
        mime_type: MIME type reported for the upload
        ocr_engine_provider: Returns the OCR engine (only called for images)

    Returns:
        The extracted text. Image text is trimmed; decoded text is returned as-is.

    Raises:
        ExtractionError: If no text could be obtained
    """
    if is_image_mime_type(mime_type):
        logger.info("Running OCR on %s upload (%d bytes)", mime_type, len(payload))
        text = ocr_engine_provider().recognize(payload).strip()
        if not text:
            raise ExtractionError("No text recognized in image")
        logger.info("OCR extracted %d characters", len(text))
        return text

    text = payload.decode("utf-8", errors="replace")
    if not text.strip():
        raise ExtractionError("Requirements file contains no text")
    return text
