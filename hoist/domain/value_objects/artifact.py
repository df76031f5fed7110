from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Artifact:
    """
    Value Object for the packaged deployable tree.
    Lives in a local temporary file for exactly one run.
    """
    path: Path
    file_count: int
    size_bytes: int

    def __post_init__(self):
        if self.file_count < 0 or self.size_bytes < 0:
            raise ValueError("Artifact counts cannot be negative")

    @property
    def name(self) -> str:
        return self.path.name

    def __str__(self):
        return str(self.path)
