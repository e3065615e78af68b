"""
Upload file handling.

Provides:
- UploadFile: Async file upload abstraction (memory or spilled to disk)
- FormData: Combined form fields and file uploads
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Union

import aiofiles

from ._datastructures import MultiDict

logger = logging.getLogger("pactum.uploads")


# ============================================================================
# UploadFile
# ============================================================================

@dataclass
class UploadFile:
    """
    A file received in a multipart/form-data request.

    Small parts stay in memory; parts larger than the request's spill
    threshold live in a temporary file that ``close()`` removes.
    """

    filename: str
    content_type: str = "application/octet-stream"
    size: Optional[int] = None
    _content: Optional[bytes] = None
    _file_path: Optional[Path] = None
    _chunk_size: int = 64 * 1024

    @classmethod
    def from_bytes(
        cls,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> "UploadFile":
        """Create an in-memory upload."""
        return cls(filename=filename, content_type=content_type, size=len(content), _content=content)

    @classmethod
    def from_path(
        cls,
        filename: str,
        file_path: Path,
        content_type: str = "application/octet-stream",
    ) -> "UploadFile":
        """Create an upload backed by a file on disk."""
        size = file_path.stat().st_size if file_path.exists() else None
        return cls(filename=filename, content_type=content_type, size=size, _file_path=file_path)

    @property
    def in_memory(self) -> bool:
        return self._content is not None

    async def read(self, size: int = -1) -> bytes:
        """
        Read file content.

        Args:
            size: Number of bytes to read (-1 for all)
        """
        if self._content is not None:
            return self._content if size == -1 else self._content[:size]

        if self._file_path is not None:
            async with aiofiles.open(self._file_path, "rb") as f:
                return await f.read() if size == -1 else await f.read(size)

        return b""

    async def stream(self, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        """Stream file content in chunks."""
        chunk_size = chunk_size or self._chunk_size

        if self._content is not None:
            for i in range(0, len(self._content), chunk_size):
                yield self._content[i:i + chunk_size]
        elif self._file_path is not None:
            async with aiofiles.open(self._file_path, "rb") as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk

    async def save(self, path: Union[str, Path], overwrite: bool = False) -> Path:
        """
        Save uploaded file to disk.

        Raises:
            FileExistsError: If file exists and overwrite=False
        """
        dest = Path(path)
        if dest.exists() and not overwrite:
            raise FileExistsError(f"File already exists: {dest}")

        dest.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(dest, "wb") as dst:
            async for chunk in self.stream():
                await dst.write(chunk)
        return dest

    async def close(self) -> None:
        """Remove the backing temporary file, if any."""
        if self._file_path and self._file_path.exists():
            try:
                os.unlink(self._file_path)
            except OSError as exc:
                logger.warning("Could not remove upload temp file %s: %s", self._file_path, exc)


# ============================================================================
# FormData
# ============================================================================

@dataclass
class FormData:
    """
    Parsed form data containing both fields and files.

    Used for application/x-www-form-urlencoded and multipart/form-data.
    """

    fields: MultiDict = field(default_factory=MultiDict)
    files: Dict[str, List[UploadFile]] = field(default_factory=dict)

    def get_field(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.fields.get(name, default)

    def get_file(self, name: str) -> Optional[UploadFile]:
        files = self.files.get(name, [])
        return files[0] if files else None

    def get_all_files(self, name: str) -> List[UploadFile]:
        return list(self.files.get(name, []))

    async def cleanup(self) -> None:
        """Clean up all temporary upload files."""
        for file_list in self.files.values():
            for upload_file in file_list:
                await upload_file.close()
