"""
Command Builder

Architectural Intent:
- Single place where remote shell commands are composed
- Every builder returns a RemoteCommand with an explicit idempotency class
- Commands re-issued by retry must converge (mkdir -p, rm -rf, cp -aT, unzip -o)
"""

import posixpath
from typing import Iterable, Optional, Sequence
from hoist.domain.value_objects.remote_command import Idempotency, RemoteCommand

SAFE = Idempotency.SAFE
UNSAFE = Idempotency.UNSAFE


def _require_removable(path: str) -> str:
    normalized = posixpath.normpath(path)
    if not path or normalized in ("/", ".", "..") or not posixpath.isabs(normalized):
        raise ValueError(f"Refusing to build a destructive command for {path!r}")
    return normalized


class CommandBuilder:
    # Probes

    @staticmethod
    def path_exists(path: str) -> RemoteCommand:
        return RemoteCommand(("test", "-e", path))

    @staticmethod
    def file_exists(path: str) -> RemoteCommand:
        return RemoteCommand(("test", "-f", path))

    @staticmethod
    def file_contains(path: str, marker: str) -> RemoteCommand:
        return RemoteCommand(("grep", "-q", "-F", "--", marker, path))

    @staticmethod
    def first_entry(path: str) -> RemoteCommand:
        """Prints one child of path; prints nothing when path is empty."""
        return RemoteCommand(("find", path, "-mindepth", "1", "-maxdepth", "1", "-print", "-quit"))

    @staticmethod
    def disk_free(path: str) -> RemoteCommand:
        return RemoteCommand(("df", "-Pk", "--", path))

    @staticmethod
    def find_siblings(parent: str, name_glob: str) -> RemoteCommand:
        return RemoteCommand(
            ("find", parent, "-mindepth", "1", "-maxdepth", "1", "-type", "d", "-name", name_glob)
        )

    # Filesystem mutations

    @staticmethod
    def make_dirs(path: str) -> RemoteCommand:
        return RemoteCommand(("mkdir", "-p", "--", path))

    @staticmethod
    def remove_tree(path: str) -> RemoteCommand:
        return RemoteCommand(("rm", "-rf", "--", _require_removable(path)))

    @staticmethod
    def remove_file(path: str) -> RemoteCommand:
        return RemoteCommand(("rm", "-f", "--", path))

    @staticmethod
    def copy_tree(source: str, destination: str) -> RemoteCommand:
        # -T copies onto destination instead of nesting inside it on a repeat
        return RemoteCommand(("cp", "-aT", "--", source, destination))

    @staticmethod
    def rename(source: str, destination: str) -> RemoteCommand:
        return RemoteCommand(("mv", "-T", "--", source, destination), idempotency=UNSAFE)

    @staticmethod
    def change_mode(mode: str, path: str, recursive: bool = False) -> RemoteCommand:
        argv = ("chmod", "-R", mode, "--", path) if recursive else ("chmod", mode, "--", path)
        return RemoteCommand(argv)

    @staticmethod
    def change_owner(owner: str, path: str) -> RemoteCommand:
        return RemoteCommand(("chown", "-R", f"{owner}:{owner}", "--", path))

    @staticmethod
    def extract_zip(archive: str, destination: str, exclude: Iterable[str] = ()) -> RemoteCommand:
        argv = ["unzip", "-o", "-q", archive, "-d", destination]
        patterns = list(exclude)
        if patterns:
            argv += ["-x", *patterns]
        return RemoteCommand(tuple(argv))

    # Runtime and build

    @staticmethod
    def runtime_version(version: str) -> RemoteCommand:
        return RemoteCommand(("node", "--version"), runtime_version=version or None)

    @staticmethod
    def project_command(
        argv: Sequence[str],
        cwd: str,
        runtime: Optional[str],
        env: Optional[dict[str, str]] = None,
    ) -> RemoteCommand:
        return RemoteCommand(
            tuple(argv),
            cwd=cwd,
            env=tuple(sorted((env or {}).items())),
            runtime_version=runtime or None,
        )

    # Process supervisor (pm2)

    @staticmethod
    def supervisor_describe(service: str, runtime: Optional[str]) -> RemoteCommand:
        return RemoteCommand(("pm2", "describe", service), runtime_version=runtime or None)

    @staticmethod
    def supervisor_info(service: str, runtime: Optional[str]) -> RemoteCommand:
        return RemoteCommand(("pm2", "info", service), runtime_version=runtime or None)

    @staticmethod
    def supervisor_reload(service: str, runtime: Optional[str]) -> RemoteCommand:
        return RemoteCommand(
            ("pm2", "reload", service, "--update-env"), runtime_version=runtime or None
        )

    @staticmethod
    def supervisor_start(
        service: str, start_argv: Sequence[str], cwd: str, runtime: Optional[str]
    ) -> RemoteCommand:
        program, *args = start_argv
        argv = ["pm2", "start", program, "--name", service]
        if args:
            argv += ["--", *args]
        return RemoteCommand(
            tuple(argv), idempotency=UNSAFE, cwd=cwd, runtime_version=runtime or None
        )

    @staticmethod
    def supervisor_save(runtime: Optional[str]) -> RemoteCommand:
        return RemoteCommand(("pm2", "save"), runtime_version=runtime or None)

    @staticmethod
    def supervisor_unstartup(runtime: Optional[str]) -> RemoteCommand:
        return RemoteCommand(("pm2", "unstartup"), runtime_version=runtime or None)

    @staticmethod
    def supervisor_startup(runtime: Optional[str]) -> RemoteCommand:
        return RemoteCommand(("pm2", "startup"), runtime_version=runtime or None)
