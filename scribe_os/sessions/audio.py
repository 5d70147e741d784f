"""Encrypted audio artifact storage.

Audio is sealed with the field cipher before it touches disk. References
handed to the session store are paths relative to the storage root, so a
reference can never point outside it.
"""

from __future__ import annotations

import asyncio
import io
import logging
import uuid
import wave
from pathlib import Path, PurePosixPath
from typing import Optional

from scribe_os.core.errors import NotFoundError
from scribe_os.crypto.cipher import FieldCipher

logger = logging.getLogger(__name__)

ALLOWED_SUFFIXES = {".wav", ".mp3", ".m4a", ".webm", ".ogg", ".mp4", ".mpeg", ".mpga", ".flac"}


def wav_duration(data: bytes) -> Optional[float]:
    """Duration in seconds for WAV payloads; None for anything else."""
    try:
        with wave.open(io.BytesIO(data), "rb") as wav:
            rate = wav.getframerate()
            return wav.getnframes() / float(rate) if rate else None
    except (wave.Error, EOFError):
        return None


class AudioStore:
    def __init__(self, root: Path, cipher: FieldCipher):
        self.root = Path(root)
        self._cipher = cipher

    def _resolve(self, ref: str) -> Path:
        rel = PurePosixPath(ref)
        if rel.is_absolute() or ".." in rel.parts:
            raise NotFoundError("Audio", ref)
        return self.root / Path(*rel.parts)

    async def save(self, session_id: str, data: bytes, filename: str = "audio.webm") -> str:
        """Encrypt and store ``data``. Returns the new reference."""
        suffix = Path(filename).suffix.lower()
        if suffix not in ALLOWED_SUFFIXES:
            suffix = ".bin"
        ref = f"{session_id}/{uuid.uuid4().hex}{suffix}.enc"
        token = self._cipher.encrypt(data)
        path = self._resolve(ref)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(token, encoding="ascii")

        await asyncio.to_thread(_write)
        logger.info("Stored %d audio bytes for session %s", len(data), session_id)
        return ref

    async def load(self, ref: str) -> bytes:
        """Read and decrypt a stored artifact.

        Raises:
            NotFoundError: nothing stored under ``ref``
            CipherError: the stored payload cannot be decrypted
        """
        path = self._resolve(ref)
        try:
            token = await asyncio.to_thread(path.read_text, encoding="ascii")
        except FileNotFoundError as e:
            raise NotFoundError("Audio", ref) from e
        return self._cipher.decrypt(token)

    def filename_for(self, ref: str) -> str:
        """Original-looking file name for the speech service (extension matters)."""
        name = PurePosixPath(ref).name
        return name[: -len(".enc")] if name.endswith(".enc") else name
