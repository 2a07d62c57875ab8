"""Script to bulk-ingest a directory of PDFs into the vector store."""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from pdf_rag.core.dependencies import services
from pdf_rag.core.exceptions import ValidationError
from pdf_rag.services.upload import PDF_MIME_TYPE, build_uploads


async def ingest_directory(directory: Path) -> None:
    """Ingest every PDF found in a directory."""
    paths = sorted(directory.glob("*.pdf"))
    if not paths:
        print(f"No PDF files found in {directory}")
        return

    try:
        uploads = build_uploads(
            [(path.name, PDF_MIME_TYPE, path.read_bytes()) for path in paths])
    except ValidationError as e:
        print(f"Rejected: {e}")
        return

    await services.initialize()
    try:
        report = await services.ingestion.ingest(uploads)
        for result in report.documents:
            line = f"{result.filename}: {result.status.value}, {result.total_chunks} chunks"
            if result.error:
                line += f" ({result.error})"
            print(line)
        stats = await services.vector_db.stats()
    finally:
        await services.shutdown()

    print(
        f"\nIngested {report.processed} of {len(uploads)} files "
        f"({report.total_chunks} chunks); collection now holds "
        f"{stats.total_chunks} chunks from {stats.total_documents} documents"
    )


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/ingest_pdfs.py <directory>")
        sys.exit(1)
    asyncio.run(ingest_directory(Path(sys.argv[1])))
