"""
Write assembled messages to a directory instead of delivering them.

Every send produces one ``<utc-timestamp>_<message-id>.eml`` file holding
the rendered MIME message with its Bcc header removed. When ``write_index``
is on, a JSON line describing the envelope (Bcc included) is appended to
``index.jsonl`` next to it. Only the newest ``max_files`` messages are
kept; the index is never pruned.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..faults import TransportFault
from ..mime import Message

logger = logging.getLogger("aquilamail.transports.file")

INDEX_NAME = "index.jsonl"

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


class FileTransport:
    """Drops each message into ``output_dir`` as an .eml file."""

    name: str

    def __init__(
        self,
        name: str = "file",
        output_dir: str = "/tmp/aquilamail",
        *,
        max_files: int = 10000,
        write_index: bool = True,
        file_extension: str = ".eml",
    ):
        self.name = name
        self.output_dir = Path(output_dir)
        self.max_files = max_files
        self.write_index = write_index
        self.file_extension = file_extension

        self._write_lock = asyncio.Lock()

    @property
    def index_path(self) -> Path:
        return self.output_dir / INDEX_NAME

    async def shutdown(self) -> None:
        logger.debug(f"Closed file transport {self.name!r}")

    # ── Writing ─────────────────────────────────────────────────────

    def _filename_for(self, message_id: str) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        slug = _UNSAFE_RE.sub("_", message_id.strip("<>"))[:50]
        return f"{stamp}_{slug}{self.file_extension}"

    def _envelope(self, message: Message, message_id: str, filename: str) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message_id": message_id,
            "filename": filename,
            "from": message.from_address,
            "to": [a for a, _ in message.to],
            "cc": [a for a, _ in message.cc],
            "bcc": [a for a, _ in message.bcc],
            "subject": message.subject,
            "parts": len(message.body),
        }

    def _write(self, path: Path, content: str, index_line: Optional[str]) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if index_line is not None:
            with self.index_path.open("a", encoding="utf-8") as f:
                f.write(index_line)
        self._prune()

    def _prune(self) -> None:
        stored = self.list_files()
        surplus = len(stored) - self.max_files
        for old in stored[:max(surplus, 0)]:
            old.unlink(missing_ok=True)
        if surplus > 0:
            logger.debug(f"{self.name}: pruned {surplus} message file(s)")

    async def send(self, message: Message) -> str:
        """Store the message and return the path of the written file."""
        mime = message.to_mime()
        message_id = mime["Message-ID"]
        filename = self._filename_for(message_id)
        path = self.output_dir / filename
        index_line = None
        if self.write_index:
            index_line = json.dumps(self._envelope(message, message_id, filename), default=str) + "\n"

        try:
            async with self._write_lock:
                await asyncio.get_running_loop().run_in_executor(
                    None, self._write, path, mime.as_string(), index_line,
                )
        except OSError as e:
            logger.error(f"{self.name}: cannot write {path}: {e}")
            raise TransportFault(
                f"File write error: {e}", transport=self.name, transient=False,
            ) from e

        logger.info(f"{self.name}: stored {message_id} at {path}")
        return str(path)

    # ── Reading back ────────────────────────────────────────────────

    def list_files(self) -> List[Path]:
        """Stored message files, oldest first."""
        if not self.output_dir.exists():
            return []
        return sorted(
            self.output_dir.glob(f"*{self.file_extension}"),
            key=lambda p: (p.stat().st_mtime, p.name),
        )

    def read_last(self) -> Optional[str]:
        stored = self.list_files()
        return stored[-1].read_text(encoding="utf-8") if stored else None

    def read_index(self) -> List[Dict[str, Any]]:
        if not self.index_path.exists():
            return []
        with self.index_path.open(encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    def clear(self) -> int:
        """Delete every stored message and the index; returns how many files went."""
        stored = self.list_files()
        for path in stored:
            path.unlink(missing_ok=True)
        self.index_path.unlink(missing_ok=True)
        return len(stored)

    def __repr__(self) -> str:
        return f"<FileTransport {self.name!r} {str(self.output_dir)!r}>"
