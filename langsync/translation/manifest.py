"""
Fingerprint manifest

Per target language, a table of relative file path -> node key -> SHA-1 of
the English source text last translated for that node. A node whose current
source hash equals the stored one is skipped without calling the oracle.

File workers run in parallel, so the table is sharded: one lock protects the
file map and each file's node map has its own lock.
"""

import hashlib
import json
import threading
from pathlib import Path
from typing import Dict, Optional

from langsync.ai.exceptions import ManifestError
from langsync.logger import get_logger

logger = get_logger(__name__)


def content_hash(content: str) -> str:
    """Calculate the SHA-1 hash of a text string (lowercase hex)."""
    return hashlib.sha1(content.encode('utf-8')).hexdigest()


class _FileShard:
    __slots__ = ("lock", "hashes")

    def __init__(self, hashes: Optional[Dict[str, str]] = None):
        self.lock = threading.Lock()
        self.hashes: Dict[str, str] = dict(hashes or {})


class FingerprintManifest:
    """Concurrency-safe file -> node -> hash table."""

    def __init__(self, file_hashes: Optional[Dict[str, Dict[str, str]]] = None):
        self._lock = threading.Lock()
        self._files: Dict[str, _FileShard] = {
            file: _FileShard(hashes) for file, hashes in (file_hashes or {}).items()
        }

    def _shard(self, file: str, create: bool = False) -> Optional[_FileShard]:
        with self._lock:
            shard = self._files.get(file)
            if shard is None and create:
                shard = self._files[file] = _FileShard()
            return shard

    def get_hash(self, file: str, node_key: str) -> Optional[str]:
        shard = self._shard(file)
        if shard is None:
            return None
        with shard.lock:
            return shard.hashes.get(node_key)

    def get_file_hashes(self, file: str) -> Optional[Dict[str, str]]:
        """Snapshot of a file's node hashes, or None when the file was never hashed."""
        shard = self._shard(file)
        if shard is None:
            return None
        with shard.lock:
            return dict(shard.hashes)

    def set_hashes(self, file: str, hashes: Dict[str, str]) -> None:
        shard = self._shard(file, create=True)
        with shard.lock:
            shard.hashes.update(hashes)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        with self._lock:
            shards = list(self._files.items())
        result = {}
        for file, shard in sorted(shards):
            with shard.lock:
                result[file] = dict(sorted(shard.hashes.items()))
        return result

    @classmethod
    def load(cls, manifest_path: Path) -> "FingerprintManifest":
        """Load a manifest from disk. A missing or empty file yields an empty manifest."""
        manifest_path = Path(manifest_path)
        if not manifest_path.exists():
            logger.debug(f"No manifest at {manifest_path}, starting empty")
            return cls()

        text = manifest_path.read_text(encoding='utf-8')
        if not text.strip():
            return cls()

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestError(
                f"Manifest {manifest_path} is not valid JSON: {e}",
                code="manifest_corrupt",
                details={"path": str(manifest_path)},
            ) from e

        if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
            raise ManifestError(
                f"Manifest {manifest_path} must map file paths to node hash objects",
                code="manifest_corrupt",
                details={"path": str(manifest_path)},
            )

        logger.debug(f"Loaded manifest {manifest_path} ({len(data)} files)")
        return cls({file: {str(k): str(v) for k, v in nodes.items()} for file, nodes in data.items()})

    def save(self, manifest_path: Path) -> None:
        manifest_path = Path(manifest_path)
        manifest_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = manifest_path.with_name(manifest_path.name + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        tmp_path.replace(manifest_path)
        logger.debug(f"Manifest saved to {manifest_path}")
