"""Upload boundary checks applied before any pipeline work."""

from typing import List, Optional

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import ValidationError
from pdf_rag.models.document import PDFUpload

PDF_MIME_TYPE = "application/pdf"
GENERIC_MIME_TYPE = "application/octet-stream"


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_bytes: Optional[int] = None,
) -> None:
    """
    Reject files that are not PDFs or exceed the size limit.

    Args:
        filename: Client-supplied filename.
        content_type: Client-declared MIME type.
        size: File size in bytes.
        max_bytes: Size limit, defaults to the configured 10MB.

    Raises:
        ValidationError: If the file does not conform.
    """
    max_bytes = settings.max_upload_bytes if max_bytes is None else max_bytes

    if not filename:
        raise ValidationError("Uploaded file has no filename")
    untyped = content_type in (None, "", GENERIC_MIME_TYPE)
    if content_type != PDF_MIME_TYPE and not (
        untyped and filename.lower().endswith(".pdf")
    ):
        raise ValidationError(f"{filename} is not a PDF file")
    if size <= 0:
        raise ValidationError(f"{filename} is empty")
    if size > max_bytes:
        raise ValidationError(
            f"{filename} is {size} bytes, the limit is {max_bytes} bytes")


def build_uploads(files: List[tuple[Optional[str], Optional[str], bytes]]) -> List[PDFUpload]:
    """
    Validate raw (filename, content_type, content) triples into uploads.

    Every file is checked before any is accepted, so a non-conforming file
    rejects the whole request up front.

    Args:
        files: Raw uploaded files.

    Returns:
        Accepted uploads in request order.

    Raises:
        ValidationError: If no files were sent or any file is rejected.
    """
    if not files:
        raise ValidationError("No files uploaded")

    uploads = []
    for filename, content_type, content in files:
        validate_upload(filename, content_type, len(content))
        uploads.append(
            PDFUpload(
                filename=filename,
                content=content,
                content_type=PDF_MIME_TYPE,
            )
        )
    return uploads
