"""
=============================================================================
WEB ROOT SCANNER
=============================================================================

Walks the web root exactly once at startup and loads every servable file
into memory. After this, the filesystem is never touched again: requests
are answered purely from the RouteTable.

=============================================================================
WHAT GETS SERVED?
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ENTRY CLASSIFICATION                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Entry                          Action                              │
    │   ─────                          ──────                              │
    │   symlink (anywhere, incl. root) ABORT  SYMLINK_IN_WEB_ROOT          │
    │   directory ".git", ".cache"     skip whole subtree                  │
    │   directory                      descend                             │
    │   directory already an ancestor  ABORT  CYCLE_IN_WEB_ROOT            │
    │   regular file ".env"            skip                                │
    │   regular file                   read into a blob, add a route       │
    │   other device than the root     ABORT  FTS_UNUSUAL_FILE             │
    │   FIFO, socket, device, ...      ABORT  FTS_UNUSUAL_FILE             │
    │   unreadable directory / stat    ABORT  FTS_READ_FAILED              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every ABORT is process-fatal: a ScanError propagates out, every blob
loaded so far is released, and the server never starts listening.

=============================================================================
ROUTES
=============================================================================

    public_html/index.html          →  /
    public_html/404.html            →  /404.html
    public_html/docs/index.html     →  /docs/
    public_html/docs/intro.html     →  /docs/intro.html
    public_html/.well-known/x       →  (nothing)

The longest route (in bytes) is reported alongside the table: it bounds
how many bytes a connection will ever read from a client.

=============================================================================
WHY lstat AND NOT stat?
=============================================================================

stat() follows symlinks; lstat() describes the link itself. Using
`entry.stat(follow_symlinks=False)` everywhere means a link is always
seen as a link and can be refused before anything reads through it.
Comparing st_dev with the root's device keeps the walk on one
filesystem, and tracking (st_dev, st_ino) of the directories on the
current path catches bind-mount loops.
=============================================================================
"""

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Set, Tuple, Union

from ..errors import ExitCode, ScanError
from .blob import ContentBlob
from .routes import RouteTable


logger = logging.getLogger(__name__)

INDEX_SUFFIX = "/index.html"


@dataclass
class ScanResult:
    """Output of a successful scan."""

    table: RouteTable
    max_route_length: int
    total_bytes: int = 0


@dataclass
class _FoundFile:
    route: str
    path: str
    size: int


def route_for(relative_path: str) -> str:
    """
    Map a root-relative file path to its route.

    >>> route_for("docs/intro.html")
    '/docs/intro.html'
    >>> route_for("docs/index.html")
    '/docs/'
    >>> route_for("index.html")
    '/'
    """
    route = "/" + relative_path.replace(os.sep, "/").lstrip("/")
    if route.endswith(INDEX_SUFFIX):
        # Keep the directory's trailing slash.
        route = route[: -len(INDEX_SUFFIX) + 1]
    return route


class WebRootScanner:
    """
    One-shot, safety-checked loader for a web root.

    Usage:
        result = WebRootScanner("public_html").scan()
        result.table.lookup("/")           # RouteEntry for index.html
        result.max_route_length            # sizes the request buffer
    """

    def __init__(self, root: Union[str, Path]):
        self.root = os.fspath(root)
        self._root_dev = -1
        self._scanned = False

    def scan(self) -> ScanResult:
        """
        Walk the root and build a frozen RouteTable.

        Raises:
            ScanError: On any safety violation or read failure.
            RuntimeError: If called twice on the same scanner.
        """
        if self._scanned:
            raise RuntimeError("WebRootScanner is one-shot; create a new one to rescan")
        self._scanned = True

        loaded: List[Tuple[str, ContentBlob]] = []
        max_route_length = 0
        total_bytes = 0

        try:
            # ─────────────────────────────────────────────────────────────
            # WALK + LOAD
            # ─────────────────────────────────────────────────────────────
            for found in self._walk_root():
                logger.debug(f"routing {found.route} -> {found.path}")
                route_length = len(os.fsencode(found.route))
                if route_length > max_route_length:
                    max_route_length = route_length

                blob = self._load(found)
                loaded.append((found.route, blob))
                total_bytes += found.size

            # ─────────────────────────────────────────────────────────────
            # INSTALL: capacity is exactly the number of files found
            # ─────────────────────────────────────────────────────────────
            table = RouteTable(capacity=len(loaded))
            for route, blob in loaded:
                table.insert(route, blob)
            table.freeze()

        except BaseException:
            for _, blob in loaded:
                blob.release()
            raise

        logger.info(
            f"web root {self.root}: {len(table)} routes, {total_bytes} bytes, "
            f"longest route {max_route_length} bytes"
        )
        return ScanResult(table=table, max_route_length=max_route_length, total_bytes=total_bytes)

    # =========================================================================
    # WALK
    # =========================================================================

    def _walk_root(self) -> Iterator[_FoundFile]:
        try:
            st = os.lstat(self.root)
        except OSError as e:
            raise ScanError(
                f"cannot open web root {self.root}",
                exit_code=ExitCode.FTS_OPEN_FAILED, os_error=e, path=self.root,
            ) from e

        if stat.S_ISLNK(st.st_mode):
            raise ScanError(
                f"encountered a symbolic link in the web root: {self.root}",
                exit_code=ExitCode.SYMLINK_IN_WEB_ROOT, path=self.root,
            )
        if not stat.S_ISDIR(st.st_mode):
            raise ScanError(
                f"web root is not a directory: {self.root}",
                exit_code=ExitCode.FTS_OPEN_FAILED, path=self.root,
            )

        self._root_dev = st.st_dev
        yield from self._walk_dir(self.root, "", {(st.st_dev, st.st_ino)})

    def _walk_dir(self, dir_path: str, rel: str, ancestors: Set[Tuple[int, int]]) -> Iterator[_FoundFile]:
        logger.debug(f"scanning path for web root: {dir_path}")
        try:
            with os.scandir(dir_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise ScanError(
                f"cannot read directory {dir_path}",
                exit_code=ExitCode.FTS_READ_FAILED, os_error=e, path=dir_path,
            ) from e

        for entry in entries:
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError as e:
                raise ScanError(
                    f"cannot stat {entry.path}",
                    exit_code=ExitCode.FTS_READ_FAILED, os_error=e, path=entry.path,
                ) from e

            mode = st.st_mode
            entry_rel = f"{rel}/{entry.name}" if rel else entry.name

            if stat.S_ISLNK(mode):
                raise ScanError(
                    f"encountered a symbolic link in the web root: {entry.path}",
                    exit_code=ExitCode.SYMLINK_IN_WEB_ROOT, path=entry.path,
                )

            if stat.S_ISDIR(mode):
                if entry.name.startswith("."):
                    logger.debug(f"skipping dotfolder {entry.path}")
                    continue
                self._check_device(entry.path, st)
                key = (st.st_dev, st.st_ino)
                if key in ancestors:
                    raise ScanError(
                        f"encountered a filesystem cycle in the web root: {entry.path}",
                        exit_code=ExitCode.CYCLE_IN_WEB_ROOT, path=entry.path,
                    )
                yield from self._walk_dir(entry.path, entry_rel, ancestors | {key})

            elif stat.S_ISREG(mode):
                if entry.name.startswith("."):
                    logger.debug(f"skipping dotfile {entry.path}")
                    continue
                self._check_device(entry.path, st)
                logger.debug(f"found file for web root: {entry.path}")
                yield _FoundFile(route=route_for(entry_rel), path=entry.path, size=st.st_size)

            else:
                raise ScanError(
                    f"encountered an unusual file in the web root: {entry.path}",
                    exit_code=ExitCode.FTS_UNUSUAL_FILE, path=entry.path,
                )

    def _check_device(self, path: str, st: os.stat_result) -> None:
        if st.st_dev != self._root_dev:
            raise ScanError(
                f"entry is on a different device than the web root: {path}",
                exit_code=ExitCode.FTS_UNUSUAL_FILE, path=path,
            )

    # =========================================================================
    # LOAD
    # =========================================================================

    def _load(self, found: _FoundFile) -> ContentBlob:
        """
        Read a file into a blob of exactly its scanned size.

        A file that is shorter or longer than the size seen during the walk
        was changed underneath us; it is never served half-read.
        """
        try:
            f = open(found.path, "rb", buffering=0)
        except OSError as e:
            raise ScanError(
                f"cannot open {found.path}",
                exit_code=ExitCode.FOPEN_FAILED, os_error=e, path=found.path,
            ) from e

        blob = ContentBlob.create(found.size)
        try:
            with f:
                view = blob.writable()
                num_read = 0
                while num_read < found.size:
                    n = f.readinto(view[num_read:])
                    if not n:
                        break
                    num_read += n
                grew = num_read == found.size and f.read(1)
                view.release()
        except OSError as e:
            blob.release()
            raise ScanError(
                f"read failed for {found.path}",
                exit_code=ExitCode.FREAD_FAILED, os_error=e, path=found.path,
            ) from e

        if num_read != found.size or grew:
            blob.release()
            raise ScanError(
                f"file size was mismatched, or was changed between scan and read: "
                f"{found.path}: expected {found.size}, read "
                f"{num_read if not grew else 'more'}",
                exit_code=ExitCode.FREAD_FAILED, path=found.path,
            )

        blob.seal()
        return blob


def scan_web_root(root: Union[str, Path]) -> ScanResult:
    """Scan `root` and return the frozen table and longest route length."""
    return WebRootScanner(root).scan()
