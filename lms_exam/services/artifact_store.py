# lms_exam/services/artifact_store.py
"""
Local filesystem storage for certificate artifacts (one file per serial).
"""
import hashlib
import logging
import os
import re
import tempfile
from pathlib import Path

from lms_exam.core.config import settings

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_CHUNK_SIZE = 64 * 1024


class CertificateArtifactStore:
    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)

    def path_for(self, name: str) -> Path:
        if not _SAFE_NAME.match(name) or ".." in name:
            raise ValueError(f"Invalid artifact name: {name!r}")
        return self.base_dir / name

    def write(self, name: str, data: bytes) -> Path:
        """
        Durably write ``data`` under ``name``.

        Written to a temp file in the same directory, fsynced, then renamed
        over the target, so readers never observe a half-written artifact.
        """
        target = self.path_for(name)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.info(f"Certificate artifact written: {target} ({len(data)} bytes)")
        return target

    def read(self, name: str) -> bytes:
        return self.path_for(name).read_bytes()

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def delete(self, name: str) -> None:
        self.path_for(name).unlink(missing_ok=True)

    def sha256(self, name: str) -> str:
        """Hex SHA-256 of the stored bytes, read back from disk."""
        digest = hashlib.sha256()
        with open(self.path_for(name), "rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()


def get_artifact_store() -> CertificateArtifactStore:
    base_dir = Path(settings.CERTIFICATE_DIR)
    if not base_dir.is_absolute():
        # relative to project root
        base_dir = Path(__file__).resolve().parent.parent.parent / base_dir
    return CertificateArtifactStore(base_dir)
