"""Opaque, encrypted storage for export payloads."""

from __future__ import annotations

import asyncio
from pathlib import Path

from scribe_os.core.errors import NotFoundError
from scribe_os.crypto.cipher import FieldCipher
from scribe_os.models.export import ExportArtifact


class ArtifactStore:
    def __init__(self, root: Path, cipher: FieldCipher):
        self.root = Path(root)
        self._cipher = cipher

    async def save(self, artifact: ExportArtifact) -> str:
        ref = f"{artifact.id}.{artifact.format.extension}.enc"
        path = self.root / ref
        token = self._cipher.encrypt(artifact.content)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(token, encoding="ascii")

        await asyncio.to_thread(_write)
        return ref

    async def load(self, ref: str) -> bytes:
        path = self.root / Path(ref).name
        try:
            token = await asyncio.to_thread(path.read_text, encoding="ascii")
        except FileNotFoundError as e:
            raise NotFoundError("Export payload", ref) from e
        return self._cipher.decrypt(token)
