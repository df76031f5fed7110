"""
Artifact Packager Port

Architectural Intent:
- Port interface for turning the local project tree into one archive
- The archive is a run-scoped temporary; discard() never raises
"""

from abc import ABC, abstractmethod
from pathlib import Path
from hoist.domain.value_objects.artifact import Artifact


class ArtifactPackagerPort(ABC):
    @abstractmethod
    def package(self, source_dir: Path, exclude: tuple[str, ...]) -> Artifact:
        pass

    @abstractmethod
    def discard(self, artifact: Artifact) -> None:
        pass
