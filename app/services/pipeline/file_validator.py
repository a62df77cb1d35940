"""CV upload validation."""

from pathlib import PurePath
from typing import Set, Dict
import logging

from app.core.config import settings
from app.core.exceptions import InvalidInputError


class FileValidator:
    """
    Validates uploaded CV files before text extraction.

    Responsibilities:
    - Require a file name and non-empty content
    - Validate file size (configurable max)
    - Verify file extension
    - Validate MIME type via magic bytes
    """

    VALID_EXTENSIONS: Set[str] = {'.pdf', '.docx', '.txt'}

    # Magic bytes for MIME type detection
    MIME_SIGNATURES: Dict[str, bytes] = {
        '.pdf': b'%PDF',
        '.docx': b'PK\x03\x04',        # ZIP (Office Open XML)
    }

    def __init__(self, logger: logging.Logger = None, max_size_mb: int = None):
        """
        Initialize file validator.

        Args:
            logger: Logger instance (optional)
            max_size_mb: Maximum file size in MB (optional, defaults to settings)
        """
        self.logger = logger or logging.getLogger(__name__)
        self.max_file_size_bytes = (max_size_mb or settings.MAX_FILE_SIZE_MB) * 1024 * 1024

    def validate(self, filename: str, content: bytes) -> str:
        """
        Validate an uploaded file.

        Args:
            filename: Original file name as sent by the client
            content: Raw file bytes

        Returns:
            The normalized (lower-case) extension, e.g. ``'.pdf'``

        Raises:
            InvalidInputError: If the file is missing, empty, too large, of an
                unsupported type, or its content does not match its extension
        """
        if not filename:
            raise InvalidInputError("No file uploaded")

        extension = PurePath(filename).suffix.lower()
        if extension not in self.VALID_EXTENSIONS:
            raise InvalidInputError("Only .pdf, .docx and .txt files are supported")

        file_size = len(content)
        if file_size == 0:
            raise InvalidInputError("Uploaded file is empty")

        if file_size > self.max_file_size_bytes:
            max_mb = self.max_file_size_bytes / (1024 * 1024)
            raise InvalidInputError(f"File must be under {max_mb:.0f} MB")

        expected_signature = self.MIME_SIGNATURES.get(extension)
        if expected_signature is not None and not content.startswith(expected_signature):
            raise InvalidInputError(
                f"File content does not match {extension} format. "
                "File may be corrupted or have wrong extension."
            )

        self.logger.info(f"Upload validation passed: {filename} ({file_size / 1024:.1f}KB)")
        return extension
