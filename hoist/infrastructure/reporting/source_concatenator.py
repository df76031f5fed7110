"""
Source Concatenator

Architectural Intent:
- Side tool: flattens selected project directories into one reviewable file
- Each file is preceded by a `// File: <relative path>` header
- Output is wrapped according to its format (.js, .ts or .html)
"""

import html
import logging
import os
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE_DIRS = ("api", "components", "config", "extensions")
DEFAULT_EXTENSIONS = (".js", ".json", ".md")
DEFAULT_EXCLUDE_NAMES = (
    "node_modules",
    ".cache",
    "build",
    "public",
    ".git",
    "package-lock.json",
    "yarn.lock",
    "extensions",
)
SUPPORTED_FORMATS = (".js", ".ts", ".html")

_HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Concatenated Project Files</title>
</head>
<body>
    <h1>Concatenated Project Files</h1>
    <pre>{body}</pre>
</body>
</html>"""


def _collect(
    root: Path, relative: str, extensions: tuple[str, ...], exclude: frozenset[str]
) -> list[tuple[str, Path]]:
    found = []
    try:
        entries = sorted(os.scandir(root), key=lambda e: e.name)
    except OSError as e:
        logger.error("Error processing directory %s: %s", root, e)
        return found

    for entry in entries:
        rel = f"{relative}/{entry.name}"
        if entry.name in exclude:
            logger.debug("Excluding (in exclude list): %s", entry.path)
        elif entry.is_dir(follow_symlinks=False):
            found += _collect(Path(entry.path), rel, extensions, exclude)
        elif entry.is_file(follow_symlinks=False) and Path(entry.name).suffix.lower() in extensions:
            found.append((rel, Path(entry.path)))
        else:
            logger.debug("Excluding (not in include list): %s", entry.path)
    return found


def wrap(content: str, fmt: str) -> str:
    if fmt == ".ts":
        return f"// TypeScript Concatenated Project Files\n{content}"
    if fmt == ".js":
        return f"// JavaScript Concatenated Project Files\n{content}"
    if fmt == ".html":
        return _HTML_TEMPLATE.format(body=html.escape(content, quote=False))
    raise ValueError(f"Unsupported output format: {fmt!r}")


def concatenate_sources(
    source_dir: Path,
    output_path: Path,
    fmt: str = ".js",
    include_dirs: Iterable[str] = DEFAULT_INCLUDE_DIRS,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    exclude_names: Iterable[str] = DEFAULT_EXCLUDE_NAMES,
) -> int:
    """
    Concatenates matching files under source_dir/<include_dir> into output_path.

    Returns the number of files written. Raises ValueError when the format is
    unsupported or nothing matched; the output file is not written in either case.
    """
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported output format: {fmt!r}")

    source_dir = Path(source_dir)
    extensions = tuple(ext.lower() for ext in extensions)
    exclude = frozenset(exclude_names)

    files: list[tuple[str, Path]] = []
    for name in include_dirs:
        directory = source_dir / name
        if directory.is_dir() and not directory.is_symlink():
            logger.info("Processing directory: %s", directory)
            files += _collect(directory, name, extensions, exclude)
        else:
            logger.info("Directory not found: %s", directory)

    parts = []
    for rel, path in files:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading file %s: %s", path, e)
            continue
        parts.append(f"\n\n// File: {rel}\n\n{content}")

    if not parts:
        raise ValueError(
            "No files were processed. Check your include/exclude settings and directory structure."
        )

    Path(output_path).write_text(wrap("".join(parts), fmt), encoding="utf-8")
    logger.info("Concatenated %d files into %s", len(parts), output_path)
    return len(parts)
