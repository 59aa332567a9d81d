"""Document loading service: uploaded bytes to plain text."""
import logging
import os
from typing import Optional, Tuple
import fitz  # PyMuPDF

from errors import ValidationError
from models.document import ParsedDocument
from config import MAX_FILE_SIZE_MB

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {"txt", "md", "csv"}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | {"pdf"}


def get_file_extension(file_name: str) -> str:
    return os.path.splitext(file_name)[1].lstrip(".").lower()


def is_supported_format(file_name: str) -> bool:
    return get_file_extension(file_name) in SUPPORTED_EXTENSIONS


class DocumentLoader:
    """Extracts plain text from uploaded files."""

    def __init__(self, max_file_size_mb: int = MAX_FILE_SIZE_MB):
        """
        Initialize DocumentLoader.

        Args:
            max_file_size_mb: Largest accepted upload
        """
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024

    def load_bytes(self, file_name: str, data: bytes) -> ParsedDocument:
        """
        Extract text from an uploaded file.

        Args:
            file_name: Original file name, used to pick the parser
            data: Raw file contents

        Returns:
            ParsedDocument with text and file metadata

        Raises:
            ValidationError: Unsupported type, oversized or empty file
        """
        file_type = get_file_extension(file_name)

        if not is_supported_format(file_name):
            raise ValidationError.from_message(
                "UNSUPPORTED_FORMAT",
                f"Unsupported file type: .{file_type or '?'}",
                supported=sorted(SUPPORTED_EXTENSIONS)
            )

        if len(data) > self.max_file_size_bytes:
            raise ValidationError.from_message(
                "FILE_TOO_LARGE",
                f"File exceeds {self.max_file_size_bytes // (1024 * 1024)} MB limit",
                size=len(data)
            )

        if file_type == "pdf":
            text, page_count = self._load_pdf(file_name, data)
        else:
            text, page_count = data.decode("utf-8", errors="replace"), None

        if not text.strip():
            raise ValidationError.from_message("EMPTY_DOCUMENT", f"No text could be extracted from {file_name}")

        parsed = ParsedDocument(
            text=text,
            file_name=file_name,
            file_type=file_type,
            size=len(data),
            word_count=len(text.split()),
            page_count=page_count
        )
        logger.info(f"Loaded {file_name}: {parsed.word_count} words")
        return parsed

    def _load_pdf(self, file_name: str, data: bytes) -> Tuple[str, Optional[int]]:
        """
        Extract text page-by-page from an in-memory PDF.

        Returns:
            (joined page text, page count)
        """
        try:
            pdf_document = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            logger.error(f"Failed to open PDF {file_name}: {str(e)}")
            raise ValidationError.from_message("INVALID_PDF", f"Could not read PDF {file_name}")

        try:
            pages = [pdf_document[page_num].get_text() for page_num in range(len(pdf_document))]
            return "\n\n".join(pages), len(pages)
        finally:
            pdf_document.close()
