import hashlib
import os
import logging
from typing import Iterable, Tuple

from fastapi import UploadFile

logger = logging.getLogger("layerlab-api")

class UploadTooLarge(Exception):
    """Raised when an upload exceeds the allowed size"""

async def read_upload_file(upload_file: UploadFile, max_bytes: int) -> Tuple[bytes, str]:
    """
    Read an upload into memory, refusing anything above max_bytes

    Returns:
        Tuple (content, md5 hex digest)
    """
    digest = hashlib.md5()
    chunks = []
    size = 0

    # Read file in chunks so oversize uploads are rejected early
    chunk_size = 1024 * 1024  # 1MB chunks
    while chunk := await upload_file.read(chunk_size):
        size += len(chunk)
        if size > max_bytes:
            raise UploadTooLarge(f"{upload_file.filename} exceeds {max_bytes // (1024 * 1024)}MB")
        digest.update(chunk)
        chunks.append(chunk)

    return b"".join(chunks), digest.hexdigest()

def save_bytes(content: bytes, destination: str) -> None:
    """
    Write content to destination, creating the parent directory
    """
    try:
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        with open(destination, "wb") as buffer:
            buffer.write(content)
    except Exception as e:
        logger.error(f"Error saving file: {str(e)}")
        raise e

def remove_files(paths: Iterable[str]) -> int:
    """
    Delete stored files, skipping ones already gone

    Returns the number of files removed
    """
    removed = 0
    for path in paths:
        try:
            if os.path.exists(path):
                os.remove(path)
                removed += 1
        except OSError as e:
            logger.error(f"Failed to remove file {path}: {str(e)}")
    return removed
