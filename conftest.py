"""Global test configuration.

Provides an in-memory remote host that interprets the commands hoist sends
(test, find, df, mkdir, rm, cp, mv, unzip, node, npm, pm2, ...) against a
dictionary filesystem, plus session/connector fakes and config fixtures.
"""

import logging
import fnmatch
import io
import posixpath
import zipfile
from pathlib import Path
from typing import Optional, Union

import pytest

from hoist.application.context import DeploymentContext
from hoist.application.retry import RetryingExecutor
from hoist.domain.errors import CommandError, RemoteConnectionError, TransferError
from hoist.domain.ports.remote_session_port import (
    CommandResult,
    RemoteConnectorPort,
    RemoteSessionPort,
)
from hoist.domain.value_objects.remote_command import RemoteCommand
from hoist.infrastructure.config import (
    DeployConfig,
    DeploymentConfig,
    RetryConfig,
    RuntimeConfig,
    SupervisorConfig,
    TargetConfig,
)

TARGET_DIR = "/srv/app"
RUNTIME = "20.11.0"


def _ok(stdout: str = "") -> CommandResult:
    return CommandResult(stdout=stdout, stderr="", exit_code=0)


def _fail(stderr: str, exit_code: int = 1) -> CommandResult:
    return CommandResult(stdout="", stderr=stderr, exit_code=exit_code)


class FakeRemoteHost:
    """A POSIX-ish host whose filesystem is two Python collections."""

    def __init__(self) -> None:
        self.dirs: set[str] = {"/"}
        self.files: dict[str, bytes] = {}
        self.free_kb = 10 * 1024 * 1024
        self.runtimes = {RUNTIME}
        self.default_runtime = RUNTIME
        self.node_reports: Optional[str] = None
        self.services: dict[str, str] = {}
        self.startup_exit = 0
        self.log: list[RemoteCommand] = []
        self.uploads: list[str] = []
        self.upload_failures = 0
        self._failures: list[dict] = []

    # Filesystem helpers

    def add_dir(self, path: str) -> None:
        path = posixpath.normpath(path)
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def add_file(self, path: str, content: Union[str, bytes]) -> None:
        path = posixpath.normpath(path)
        self.add_dir(posixpath.dirname(path))
        self.files[path] = content.encode() if isinstance(content, str) else content

    def read(self, path: str) -> str:
        return self.files[posixpath.normpath(path)].decode()

    def exists(self, path: str) -> bool:
        path = posixpath.normpath(path)
        return path in self.dirs or path in self.files

    def tree(self, root: str) -> dict[str, str]:
        """Files under root keyed by their path relative to root."""
        prefix = posixpath.normpath(root) + "/"
        return {
            path[len(prefix):]: data.decode()
            for path, data in self.files.items()
            if path.startswith(prefix)
        }

    def _under(self, root: str, path: str) -> bool:
        return path == root or path.startswith(root.rstrip("/") + "/")

    def _children(self, path: str) -> list[str]:
        return sorted(
            p for p in self.dirs | set(self.files)
            if p != path and posixpath.dirname(p) == path
        )

    def _remove(self, root: str) -> None:
        if root == "/":
            raise AssertionError("refusing to remove /")
        self.dirs = {d for d in self.dirs if not self._under(root, d)}
        self.files = {f: c for f, c in self.files.items() if not self._under(root, f)}

    def _copy(self, source: str, destination: str) -> None:
        for d in [d for d in self.dirs if self._under(source, d)]:
            self.add_dir(destination + d[len(source):])
        for f, content in [(f, c) for f, c in self.files.items() if self._under(source, f)]:
            self.add_file(destination + f[len(source):], content)

    # Failure injection and inspection

    def fail_on(
        self,
        *prefix: str,
        times: Optional[int] = None,
        exit_code: int = 1,
        stderr: str = "simulated failure",
    ) -> None:
        """Commands whose argv starts with prefix fail (`times` times, or always)."""
        self._failures.append(
            {"prefix": tuple(prefix), "times": times, "exit_code": exit_code, "stderr": stderr}
        )

    def commands(self) -> list[tuple[str, ...]]:
        return [command.argv for command in self.log]

    def index_of(self, *prefix: str) -> int:
        for index, argv in enumerate(self.commands()):
            if argv[:len(prefix)] == prefix:
                return index
        return -1

    def count(self, *prefix: str) -> int:
        return sum(1 for argv in self.commands() if argv[:len(prefix)] == prefix)

    def _injected(self, argv: tuple[str, ...]) -> Optional[CommandResult]:
        for rule in self._failures:
            if argv[:len(rule["prefix"])] != rule["prefix"]:
                continue
            if rule["times"] is None:
                return _fail(rule["stderr"], rule["exit_code"])
            if rule["times"] > 0:
                rule["times"] -= 1
                return _fail(rule["stderr"], rule["exit_code"])
        return None

    # Command interpreter

    def execute(self, command: RemoteCommand) -> CommandResult:
        self.log.append(command)
        injected = self._injected(command.argv)
        if injected is not None:
            return injected
        if command.cwd and command.cwd not in self.dirs:
            return _fail(f"cd: {command.cwd}: No such file or directory")
        handler = getattr(self, f"_cmd_{command.program}", None)
        if handler is None:
            return _fail(f"{command.program}: command not found", 127)
        return handler(command)

    def _cmd_test(self, command: RemoteCommand) -> CommandResult:
        flag, path = command.argv[1], posixpath.normpath(command.argv[2])
        found = path in self.files if flag == "-f" else self.exists(path)
        return _ok() if found else _fail("", 1)

    def _cmd_grep(self, command: RemoteCommand) -> CommandResult:
        marker, path = command.argv[-2], posixpath.normpath(command.argv[-1])
        if path not in self.files:
            return _fail(f"grep: {path}: No such file or directory", 2)
        return _ok() if marker.encode() in self.files[path] else _fail("", 1)

    def _cmd_find(self, command: RemoteCommand) -> CommandResult:
        argv = command.argv
        path = posixpath.normpath(argv[1])
        if path not in self.dirs:
            return _fail(f"find: '{path}': No such file or directory")
        children = self._children(path)
        if "-type" in argv:
            glob = argv[argv.index("-name") + 1]
            matches = [
                c for c in children
                if c in self.dirs and fnmatch.fnmatchcase(posixpath.basename(c), glob)
            ]
            return _ok("".join(f"{m}\n" for m in matches))
        return _ok(f"{children[0]}\n" if children else "")

    def _cmd_df(self, command: RemoteCommand) -> CommandResult:
        path = command.argv[-1]
        if not self.exists(path):
            return _fail(f"df: {path}: No such file or directory")
        total = self.free_kb * 2
        return _ok(
            "Filesystem     1024-blocks      Used Available Capacity Mounted on\n"
            f"/dev/sda1      {total} {total - self.free_kb} {self.free_kb}      50% /\n"
        )

    def _cmd_mkdir(self, command: RemoteCommand) -> CommandResult:
        path = posixpath.normpath(command.argv[-1])
        if path in self.files:
            return _fail(f"mkdir: cannot create directory '{path}': File exists")
        self.add_dir(path)
        return _ok()

    def _cmd_rm(self, command: RemoteCommand) -> CommandResult:
        self._remove(posixpath.normpath(command.argv[-1]))
        return _ok()

    def _cmd_cp(self, command: RemoteCommand) -> CommandResult:
        source, destination = (posixpath.normpath(p) for p in command.argv[-2:])
        if source not in self.dirs:
            return _fail(f"cp: cannot stat '{source}': No such file or directory")
        self._copy(source, destination)
        return _ok()

    def _cmd_mv(self, command: RemoteCommand) -> CommandResult:
        source, destination = (posixpath.normpath(p) for p in command.argv[-2:])
        if not self.exists(source):
            return _fail(f"mv: cannot stat '{source}': No such file or directory")
        if destination in self.dirs and self._children(destination):
            return _fail(f"mv: cannot move '{source}' to '{destination}': Directory not empty")
        if posixpath.dirname(destination) not in self.dirs:
            return _fail(f"mv: cannot move '{source}' to '{destination}': No such file or directory")
        self.dirs.discard(destination)
        self._copy(source, destination)
        self._remove(source)
        return _ok()

    def _cmd_chmod(self, command: RemoteCommand) -> CommandResult:
        path = command.argv[-1]
        return _ok() if self.exists(path) else _fail(f"chmod: cannot access '{path}'")

    def _cmd_chown(self, command: RemoteCommand) -> CommandResult:
        path = command.argv[-1]
        return _ok() if self.exists(path) else _fail(f"chown: cannot access '{path}'")

    def _cmd_unzip(self, command: RemoteCommand) -> CommandResult:
        argv = command.argv
        archive, destination = posixpath.normpath(argv[3]), argv[argv.index("-d") + 1]
        excludes = argv[argv.index("-x") + 1:] if "-x" in argv else ()
        if archive not in self.files:
            return _fail(f"unzip: cannot find or open {archive}", 9)
        with zipfile.ZipFile(io.BytesIO(self.files[archive])) as bundle:
            for name in bundle.namelist():
                if any(fnmatch.fnmatchcase(name, pattern) for pattern in excludes):
                    continue
                target = posixpath.join(destination, name)
                if name.endswith("/"):
                    self.add_dir(target)
                else:
                    self.add_file(target, bundle.read(name))
        return _ok()

    def _cmd_node(self, command: RemoteCommand) -> CommandResult:
        version = (command.runtime_version or self.default_runtime).lstrip("v")
        if version not in self.runtimes:
            return _fail(f"N/A: version \"v{version}\" is not yet installed.", 3)
        return _ok(f"v{self.node_reports or version}\n")

    def _cmd_npm(self, command: RemoteCommand) -> CommandResult:
        return _ok("up to date\n")

    def _cmd_pm2(self, command: RemoteCommand) -> CommandResult:
        argv = command.argv
        action = argv[1]
        runtime = (command.runtime_version or self.default_runtime).lstrip("v")
        if action in ("describe", "info", "reload"):
            name = argv[2]
            if name not in self.services:
                return _fail(f"[PM2][WARN] {name} doesn't exist")
            if action == "reload":
                self.services[name] = runtime
                return _ok()
            return _ok(
                f"│ status            │ online │\n"
                f"│ node.js version   │ {self.services[name]} │\n"
            )
        if action == "start":
            name = argv[argv.index("--name") + 1]
            if name in self.services:
                return _fail(f"[PM2][ERROR] Script already launched: {name}")
            self.services[name] = runtime
            return _ok()
        if action == "startup":
            if self.startup_exit:
                return CommandResult(
                    stdout="sudo env PATH=$PATH pm2 startup systemd -u deploy\n",
                    stderr="", exit_code=self.startup_exit,
                )
            return _ok()
        if action in ("save", "unstartup"):
            return _ok()
        return _fail(f"pm2: unknown command {action}")

    # Uploads

    def receive(self, local_path: Path, remote_path: str) -> None:
        if self.upload_failures > 0:
            self.upload_failures -= 1
            raise TransferError(f"Upload of {local_path} to {remote_path} failed: reset by peer")
        if posixpath.dirname(posixpath.normpath(remote_path)) not in self.dirs:
            raise TransferError(f"Upload of {local_path} to {remote_path} failed: no such directory")
        self.uploads.append(remote_path)
        self.add_file(remote_path, Path(local_path).read_bytes())


class FakeSession(RemoteSessionPort):
    def __init__(self, host: FakeRemoteHost) -> None:
        self.host = host
        self.disposed = False

    @property
    def is_connected(self) -> bool:
        return not self.disposed

    async def run(self, command: RemoteCommand, check: bool = True) -> CommandResult:
        assert not self.disposed, "command issued on a disposed session"
        result = self.host.execute(command)
        if check and not result.ok:
            raise CommandError(str(command), result.exit_code, result.stderr)
        return result

    async def put_file(self, local_path: Path, remote_path: str) -> None:
        assert not self.disposed, "upload issued on a disposed session"
        self.host.receive(local_path, remote_path)

    async def dispose(self) -> None:
        self.disposed = True


class FakeConnector(RemoteConnectorPort):
    def __init__(self, host: FakeRemoteHost, failures: int = 0) -> None:
        self.host = host
        self.failures = failures
        self.attempts = 0
        self.sessions: list[FakeSession] = []

    async def connect(self, target, credentials, timeout) -> RemoteSessionPort:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise RemoteConnectionError(f"Could not connect to {target}: timed out")
        session = FakeSession(self.host)
        self.sessions.append(session)
        return session


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def install_app(host: FakeRemoteHost, version: str = "A") -> None:
    """Existing deployment: manifest, code, an upload and a running service."""
    host.add_file(f"{TARGET_DIR}/package.json", f'{{"name": "app", "version": "{version}"}}')
    host.add_file(f"{TARGET_DIR}/server.js", f"// version {version}\n")
    host.add_file(f"{TARGET_DIR}/public/uploads/photo.jpg", "jpeg-bytes")
    host.add_file(f"{TARGET_DIR}/config/env/production.json", '{"secret": "keep"}')
    host.services["app"] = RUNTIME


@pytest.fixture(autouse=True)
def reset_hoist_logger():
    """configure_logging() mutates the shared "hoist" logger; undo it per test."""
    logger = logging.getLogger("hoist")
    yield
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_host():
    host = FakeRemoteHost()
    host.add_dir("/srv")
    install_app(host)
    return host


@pytest.fixture
def empty_host():
    host = FakeRemoteHost()
    host.add_dir("/srv")
    return host


@pytest.fixture
def connector(fake_host):
    return FakeConnector(fake_host)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def project_dir(tmp_path):
    """Local project at version B, with files the packager must leave out."""
    project = tmp_path / "project"
    (project / "public" / "uploads").mkdir(parents=True)
    (project / "node_modules" / "left-pad").mkdir(parents=True)
    (project / "package.json").write_text('{"name": "app", "version": "B"}')
    (project / "server.js").write_text("// version B\n")
    (project / "public" / "index.html").write_text("<h1>B</h1>")
    (project / "public" / "uploads" / "local.jpg").write_text("local upload")
    (project / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1")
    (project / ".env").write_text("SECRET=local")
    return project


@pytest.fixture
def config(project_dir):
    return DeploymentConfig(
        target=TargetConfig(host="deploy.example.com", username="deploy", password="secret"),
        deploy=DeployConfig(target_dir=TARGET_DIR, project_dir=str(project_dir)),
        runtime=RuntimeConfig(version=RUNTIME),
        supervisor=SupervisorConfig(service_name="app"),
        retry=RetryConfig(max_attempts=3, delay_seconds=0.0),
    )


@pytest.fixture
def executor(config, sleep_recorder):
    return RetryingExecutor(config.retry.to_policy(), sleep=sleep_recorder)


@pytest.fixture
def ctx(config, fake_host, executor):
    return DeploymentContext(config=config, session=FakeSession(fake_host), executor=executor)
