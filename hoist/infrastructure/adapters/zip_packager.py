"""
Zip Packager Adapter

Architectural Intent:
- Infrastructure adapter implementing ArtifactPackagerPort with zipfile
- Walks the project tree once, applying gitignore-style exclusion globs
- The archive lives in a temp file; discard() logs instead of raising

Exclusion rules:
- "dir/**" excludes the directory and everything beneath it
- A pattern without "/" matches the basename at any depth ("*.zip", ".env")
- Any other pattern is matched against the POSIX relative path
"""

import fnmatch
import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Optional
from hoist.domain.errors import ConfigError, HoistError
from hoist.domain.ports.artifact_packager_port import ArtifactPackagerPort
from hoist.domain.value_objects.artifact import Artifact

logger = logging.getLogger(__name__)


class PackagingError(HoistError):
    pass


def is_excluded(relative: str, patterns: tuple[str, ...]) -> bool:
    name = relative.rsplit("/", 1)[-1]
    for pattern in patterns:
        if pattern.endswith("/**"):
            prefix = pattern[:-3]
            head = relative.split("/")
            for depth in range(1, len(head) + 1):
                if fnmatch.fnmatchcase("/".join(head[:depth]), prefix):
                    return True
        elif "/" not in pattern:
            if fnmatch.fnmatchcase(name, pattern):
                return True
        elif fnmatch.fnmatchcase(relative, pattern):
            return True
    return False


class ZipPackager(ArtifactPackagerPort):
    def __init__(self, temp_dir: Optional[str] = None, compress_level: int = 9) -> None:
        self.temp_dir = temp_dir
        self.compress_level = compress_level

    def _walk(self, source_dir: Path, exclude: tuple[str, ...]):
        for root, dirs, files in os.walk(source_dir):
            rel_root = Path(root).relative_to(source_dir).as_posix()
            rel_root = "" if rel_root == "." else rel_root + "/"
            # Prune in place so excluded trees are never descended into
            dirs[:] = sorted(d for d in dirs if not is_excluded(rel_root + d, exclude))
            for file_name in sorted(files):
                relative = rel_root + file_name
                if not is_excluded(relative, exclude):
                    yield Path(root) / file_name, relative

    def package(self, source_dir: Path, exclude: tuple[str, ...]) -> Artifact:
        source_dir = Path(source_dir).resolve()
        if not source_dir.is_dir():
            raise ConfigError(f"Project directory not found: {source_dir}")

        fd, archive_name = tempfile.mkstemp(prefix="hoist-", suffix=".zip", dir=self.temp_dir)
        os.close(fd)
        archive_path = Path(archive_name)
        count = 0
        try:
            with zipfile.ZipFile(
                archive_path, "w", compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compress_level,
            ) as archive:
                for path, relative in self._walk(source_dir, exclude):
                    if path.resolve() == archive_path.resolve():
                        continue
                    archive.write(path, relative)
                    count += 1
        except OSError as e:
            self.discard(Artifact(archive_path, 0, 0))
            raise PackagingError(f"Packaging {source_dir} failed: {e}", e) from e

        if count == 0:
            self.discard(Artifact(archive_path, 0, 0))
            raise PackagingError(f"No files to package in {source_dir} after exclusions")

        artifact = Artifact(archive_path, count, archive_path.stat().st_size)
        logger.info("Packaged %d files from %s into %s (%d bytes)",
                    count, source_dir, archive_path, artifact.size_bytes)
        return artifact

    def discard(self, artifact: Artifact) -> None:
        try:
            artifact.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Error cleaning up local archive %s: %s", artifact.path, e)
