"""Source processor for plain-text files (read as UTF-8, unmodified)."""

from __future__ import annotations

import asyncio
from pathlib import Path

from studyrag.utils.errors import ExtractionError


class TextProcessor:
    """Reads ``.txt`` files as-is."""

    async def extract(self, file_path: str) -> str:
        try:
            return await asyncio.to_thread(Path(file_path).read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ExtractionError(
                message=f"Cannot read text file {file_path}: {exc}",
            ) from exc
