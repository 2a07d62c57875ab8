"""PDF text extraction service."""

import io
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from typing import Iterator, List, Optional

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from pdf_rag.core.exceptions import ExtractionError
from pdf_rag.models.document import ExtractedPage, ExtractionResult, ExtractionWarning

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = (
    "The file {filename} could not be read as a PDF and no text was extracted. "
    "Reason: {reason}"
)


class _WarningCollector:
    """Counts parser log records for one extraction."""

    def __init__(self) -> None:
        self.counts: Counter = Counter()
        self.first_message: dict = {}

    def add(self, record: logging.LogRecord) -> None:
        code = f"parser_{record.funcName}" if record.funcName else "parser_warning"
        self.counts[code] += 1
        self.first_message.setdefault(code, record.getMessage())


class _ParserWarningRouter(logging.Handler):
    """Hands pypdf records to the collector active on the emitting thread."""

    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        collector: Optional[_WarningCollector] = getattr(self.local, "collector", None)
        if collector is not None:
            collector.add(record)


_router = _ParserWarningRouter()
logging.getLogger("pypdf").addHandler(_router)


@contextmanager
def _collect_parser_warnings() -> Iterator[_WarningCollector]:
    collector = _WarningCollector()
    previous = getattr(_router.local, "collector", None)
    _router.local.collector = collector
    try:
        yield collector
    finally:
        _router.local.collector = previous


class PDFExtractor:
    """Extracts per-page text from PDF binaries using pypdf."""

    def extract(self, data: bytes) -> ExtractionResult:
        """
        Extract text from every page of a PDF.

        Args:
            data: Raw PDF bytes.

        Returns:
            One ExtractedPage per page (text may be empty) plus structured warnings.

        Raises:
            ExtractionError: If the binary cannot be opened as a PDF.
        """
        if not data:
            raise ExtractionError("Empty file")

        with _collect_parser_warnings() as collector:
            try:
                reader = PdfReader(io.BytesIO(data), strict=False)
                if reader.is_encrypted:
                    reader.decrypt("")
                pdf_pages = list(reader.pages)
            except PyPdfError as e:
                raise ExtractionError(f"Unreadable PDF: {str(e)}") from e
            except Exception as e:
                raise ExtractionError(f"Failed to open PDF: {str(e)}") from e

            pages: List[ExtractedPage] = []
            page_errors = 0
            empty_pages = 0
            for page_number, page in enumerate(pdf_pages, 1):
                try:
                    text = page.extract_text() or ""
                except Exception as e:
                    logger.debug(f"Failed to extract page {page_number}: {str(e)}")
                    page_errors += 1
                    text = ""
                if not text.strip():
                    empty_pages += 1
                pages.append(ExtractedPage(page_number=page_number, text=text))

        warnings = [
            ExtractionWarning(
                code=code,
                count=count,
                detail=collector.first_message.get(code),
            )
            for code, count in sorted(collector.counts.items())
        ]
        if empty_pages:
            warnings.append(ExtractionWarning(code="empty_page", count=empty_pages))
        if page_errors:
            warnings.append(ExtractionWarning(code="page_error", count=page_errors))

        return ExtractionResult(pages=pages, warnings=warnings)

    def placeholder(self, filename: str, reason: str) -> ExtractionResult:
        """
        Build the single-page fallback used when a file cannot be read.

        Args:
            filename: Name of the unreadable upload.
            reason: Short description of the failure.

        Returns:
            A one-page extraction result explaining the failure.
        """
        return ExtractionResult(
            pages=[
                ExtractedPage(
                    page_number=1,
                    text=PLACEHOLDER_TEXT.format(filename=filename, reason=reason),
                )
            ],
            warnings=[ExtractionWarning(code="unreadable_file", detail=reason)],
        )
