# web.py -- WSGI application serving browsable git repositories
# Copyright (C) 2026 The matcha authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# matcha is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""HTTP server for browsing git repositories.

Every request path is first mapped to a repository below the root
directory (see :mod:`matcha.locate`); the rest of the path is matched
against the routes in :attr:`MatchaApplication.routes`::

    /                        tree of the default branch
    /tree/{rev}[/{path}]     directory listing
    /blob/{rev}/{path}       file
    /raw/{rev}/{path}        file contents
    /branches                branches
    /tags                    tags
    /commits[/{rev}]         history
    /commit/{hash}           single commit with its diff
"""

__all__ = [
    "HTTP_ERROR",
    "HTTP_METHOD_NOT_ALLOWED",
    "HTTP_NOT_FOUND",
    "HTTP_OK",
    "HTTP_SERVICE_UNAVAILABLE",
    "MAX_TEXT_SIZE",
    "MatchaApplication",
    "MatchaRequest",
    "ThreadingWSGIServerLogger",
    "WSGIRequestHandlerLogger",
    "content_disposition",
    "main",
    "make_app",
]

import re
import socketserver
import stat
import sys
import time
from collections.abc import Iterable, Sequence
from email.utils import formatdate
from io import BytesIO
from types import TracebackType
from typing import Any, Callable, ClassVar, Optional, Union
from urllib.parse import quote
from wsgiref.simple_server import (
    ServerHandler,
    WSGIRequestHandler,
    WSGIServer,
    make_server,
)

from dulwich.errors import MissingCommitError
from dulwich.objects import S_ISGITLINK, Blob, Commit, Tree
from dulwich.patch import is_binary, write_tree_diff
from dulwich.walk import Walker

from . import log_utils, pages
from .attribution import attribute, tree_patterns
from .config import Settings, parse_settings
from .errors import AttributionCancelled, NotFoundError, StoreError
from .locate import Location, RepositoryCache, RepositoryLocator
from .revision import (
    branch_heads,
    list_tags,
    lookup_commit,
    resolve_revision,
    to_bytes,
)

logger = log_utils.getLogger(__name__)

StartResponse = Callable[..., Callable[[bytes], object]]
WSGIEnvironment = dict[str, Any]

HTTP_OK = "200 OK"
HTTP_NOT_FOUND = "404 Not Found"
HTTP_METHOD_NOT_ALLOWED = "405 Method Not Allowed"
HTTP_ERROR = "500 Internal Server Error"
HTTP_SERVICE_UNAVAILABLE = "503 Service Unavailable"

HTML_CONTENT_TYPE = "text/html; charset=utf-8"

# Files larger than this are never shown inline.
MAX_TEXT_SIZE = 1024 * 1024

NO_CACHE_HEADERS = [
    ("Expires", "Fri, 01 Jan 1980 00:00:00 GMT"),
    ("Pragma", "no-cache"),
    ("Cache-Control", "no-cache, max-age=0, must-revalidate"),
]


def cache_forever_headers(now: Optional[float] = None) -> list[tuple[str, str]]:
    """Headers for responses that depend only on immutable objects."""
    if now is None:
        now = time.time()
    return [
        ("Date", formatdate(now, usegmt=True)),
        ("Expires", formatdate(now + 31536000, usegmt=True)),
        ("Cache-Control", "public, max-age=31536000"),
    ]


def content_disposition(filename: str) -> str:
    """Build an inline Content-Disposition header value for filename.

    Header values must be latin-1, so the plain ``filename`` parameter gets
    an ASCII rendition and the real name goes in ``filename*`` (RFC 5987).
    """
    fallback = "".join(
        c if " " <= c < "\x7f" and c not in '"\\' else "_" for c in filename
    )
    return f"inline; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


class MatchaRequest:
    """State of a single HTTP request.

    Attributes:
      environ: the WSGI environment for the request.
    """

    def __init__(self, environ: WSGIEnvironment, start_response: StartResponse) -> None:
        self.environ = environ
        self._start_response = start_response
        self._cache_headers: list[tuple[str, str]] = []
        self._headers: list[tuple[str, str]] = []

    def add_header(self, name: str, value: str) -> None:
        """Add a header to the response."""
        self._headers.append((name, value))

    def respond(
        self,
        status: str = HTTP_OK,
        content_type: Optional[str] = None,
        headers: Optional[Sequence[tuple[str, str]]] = None,
    ) -> Callable[[bytes], object]:
        """Begin a response with the given status and other headers."""
        if headers:
            self._headers.extend(headers)
        if content_type:
            self._headers.append(("Content-Type", content_type))
        self._headers.extend(self._cache_headers)

        return self._start_response(status, self._headers)

    def _plain(self, status: str, message: str) -> bytes:
        self._cache_headers = []
        self.respond(status, "text/plain; charset=utf-8")
        return message.encode("utf-8")

    def not_found(self, message: str) -> bytes:
        """Begin a HTTP 404 response and return the text of a message."""
        logger.info("Not found: %s", message)
        return self._plain(HTTP_NOT_FOUND, message)

    def method_not_allowed(self, message: str) -> bytes:
        """Begin a HTTP 405 response and return the text of a message."""
        self.add_header("Allow", "GET, HEAD")
        return self._plain(HTTP_METHOD_NOT_ALLOWED, message)

    def error(self, message: str) -> bytes:
        """Begin a HTTP 500 response and return the text of a message."""
        return self._plain(HTTP_ERROR, message)

    def unavailable(self, message: str) -> bytes:
        """Begin a HTTP 503 response and return the text of a message."""
        logger.warning("Unavailable: %s", message)
        return self._plain(HTTP_SERVICE_UNAVAILABLE, message)

    def nocache(self) -> None:
        """Set the response to never be cached by the client."""
        self._cache_headers = NO_CACHE_HEADERS

    def cache_forever(self) -> None:
        """Set the response to be cached forever by the client."""
        self._cache_headers = cache_forever_headers()

    def html(self, page: str) -> list[bytes]:
        """Send a complete HTML page."""
        self.respond(HTTP_OK, HTML_CONTENT_TYPE)
        return [page.encode("utf-8")]


def _get_object(location: Location, sha: bytes) -> Any:
    try:
        return location.repo.object_store[sha]
    except (KeyError, OSError) as exc:
        raise StoreError(f"Unable to read object {sha.decode('ascii')}") from exc


def _lookup_path(
    location: Location, commit: Commit, path: str, kind: str
) -> tuple[int, bytes]:
    """Find the mode and sha of path within commit.

    Submodules are never descended into.

    Raises:
      NotFoundError: of the given kind if there is nothing at path
    """
    mode, sha = stat.S_IFDIR, commit.tree
    for part in to_bytes(path).split(b"/"):
        if not part:
            continue
        if not stat.S_ISDIR(mode):
            raise NotFoundError(kind, path)
        tree = _get_object(location, sha)
        if not isinstance(tree, Tree):
            raise StoreError(f"Object {sha.decode('ascii')} is not a tree")
        try:
            mode, sha = tree[part]
        except KeyError as exc:
            raise NotFoundError(kind, path) from exc
    return mode, sha


def _find_readme(location: Location, tree: Tree) -> Optional[str]:
    for entry in tree.iteritems():
        name = entry.path.decode("utf-8", "replace")
        stem = name.rsplit(".", 1)[0] if "." in name else name
        if stem.lower() == "readme" and stat.S_ISREG(entry.mode):
            blob = _get_object(location, entry.sha)
            if is_binary(blob.data):
                return None
            return blob.data.decode("utf-8", "replace")
    return None


def show_tree(
    req: MatchaRequest, app: "MatchaApplication", location: Location, mat: re.Match[str]
) -> list[bytes]:
    """List a directory, annotating each entry with its last commit."""
    revision = mat.groupdict().get("rev") or app.default_branch
    path = (mat.groupdict().get("path") or "").strip("/")
    commit = resolve_revision(location.repo, revision)
    mode, sha = _lookup_path(location, commit, path, "directory")
    if not stat.S_ISDIR(mode):
        raise NotFoundError("directory", path)
    tree = _get_object(location, sha)

    deadline = None
    if app.attribution_timeout:
        deadline = time.monotonic() + app.attribution_timeout
    last_commits = attribute(
        location.repo.object_store, commit, tree_patterns(path, tree), deadline=deadline
    )
    for i in last_commits.unresolved():
        logger.warning(
            "No commit found for %r in history of %s",
            last_commits.patterns[i],
            commit.id.decode("ascii"),
        )

    rows = []
    for i, entry in enumerate(tree.iteritems(), 1):
        name = entry.path.decode("utf-8", "replace")
        rows.append(
            pages.TreeRow(
                name=name,
                path=f"{path}/{name}" if path else name,
                mode=entry.mode,
                last_commit=last_commits.get(i),
            )
        )

    req.nocache()
    return req.html(
        pages.tree_page(
            app.page_context(location),
            revision,
            path,
            rows,
            last_commits.get(0),
            readme=_find_readme(location, tree),
        )
    )


def _get_blob(
    location: Location, revision: str, path: str
) -> Blob:
    commit = resolve_revision(location.repo, revision)
    mode, sha = _lookup_path(location, commit, path, "file")
    if stat.S_ISDIR(mode) or S_ISGITLINK(mode):
        raise NotFoundError("file", path)
    return _get_object(location, sha)


def show_blob(
    req: MatchaRequest, app: "MatchaApplication", location: Location, mat: re.Match[str]
) -> list[bytes]:
    """Show a file as text, unless it is too large or binary."""
    revision = mat.group("rev")
    path = mat.group("path").strip("/")
    blob = _get_blob(location, revision, path)
    data = blob.data
    contents: Optional[str]
    if len(data) > MAX_TEXT_SIZE or is_binary(data):
        contents = None
    else:
        contents = data.decode("utf-8", "replace")
    req.nocache()
    return req.html(pages.blob_page(app.page_context(location), revision, path, contents))


def show_raw(
    req: MatchaRequest, app: "MatchaApplication", location: Location, mat: re.Match[str]
) -> list[bytes]:
    """Send the contents of a file."""
    revision = mat.group("rev")
    path = mat.group("path").strip("/")
    blob = _get_blob(location, revision, path)
    data = blob.data
    if is_binary(data):
        content_type = "application/octet-stream"
    else:
        content_type = "text/plain; charset=utf-8"
    filename = path.rsplit("/", 1)[-1]
    req.nocache()
    req.respond(
        HTTP_OK,
        content_type,
        headers=[
            ("Content-Length", str(len(data))),
            ("Content-Disposition", content_disposition(filename)),
        ],
    )
    return [data]


def show_branches(
    req: MatchaRequest, app: "MatchaApplication", location: Location, mat: re.Match[str]
) -> list[bytes]:
    req.nocache()
    return req.html(
        pages.branches_page(app.page_context(location), branch_heads(location.repo))
    )


def show_tags(
    req: MatchaRequest, app: "MatchaApplication", location: Location, mat: re.Match[str]
) -> list[bytes]:
    req.nocache()
    return req.html(pages.tags_page(app.page_context(location), list_tags(location.repo)))


def show_commits(
    req: MatchaRequest, app: "MatchaApplication", location: Location, mat: re.Match[str]
) -> list[bytes]:
    """Show the history leading up to a revision."""
    revision = mat.groupdict().get("rev") or app.default_branch
    commit = resolve_revision(location.repo, revision)
    try:
        commits = [
            entry.commit
            for entry in Walker(location.repo.object_store, [commit.id])
        ]
    except (KeyError, OSError, MissingCommitError) as exc:
        raise StoreError(f"Unable to walk history of {revision}") from exc
    req.nocache()
    return req.html(pages.commits_page(app.page_context(location), revision, commits))


def show_commit(
    req: MatchaRequest, app: "MatchaApplication", location: Location, mat: re.Match[str]
) -> list[bytes]:
    """Show a commit and its changes relative to its first parent."""
    commit = lookup_commit(location.repo, mat.group("hash"))
    if commit.parents:
        old_tree = _get_object(location, commit.parents[0]).tree
    else:
        old_tree = None
    out = BytesIO()
    try:
        write_tree_diff(out, location.repo.object_store, old_tree, commit.tree)
    except (KeyError, OSError) as exc:
        raise StoreError(f"Unable to diff {commit.id.decode('ascii')}") from exc
    req.cache_forever()
    return req.html(
        pages.commit_page(
            app.page_context(location), commit, out.getvalue().decode("utf-8", "replace")
        )
    )


Handler = Callable[
    [MatchaRequest, "MatchaApplication", Location, re.Match[str]], Iterable[bytes]
]


class MatchaApplication:
    """WSGI application serving every repository below a root directory.

    Attributes:
      locator: RepositoryLocator mapping request paths to repositories
      default_branch: Revision used when a URL names none
      attribution_timeout: Seconds a tree listing may spend walking history
    """

    routes: ClassVar[list[tuple[re.Pattern[str], Handler]]] = [
        (re.compile(r"^/$"), show_tree),
        (re.compile(r"^/tree/(?P<rev>[^/]+)/?$"), show_tree),
        (re.compile(r"^/tree/(?P<rev>[^/]+)/(?P<path>.+)$"), show_tree),
        (re.compile(r"^/blob/(?P<rev>[^/]+)/(?P<path>.+)$"), show_blob),
        (re.compile(r"^/raw/(?P<rev>[^/]+)/(?P<path>.+)$"), show_raw),
        (re.compile(r"^/branches/?$"), show_branches),
        (re.compile(r"^/tags/?$"), show_tags),
        (re.compile(r"^/commits/?$"), show_commits),
        (re.compile(r"^/commits/(?P<rev>[^/]+)/?$"), show_commits),
        (re.compile(r"^/commit/(?P<hash>[^/]+)/?$"), show_commit),
    ]

    def __init__(
        self,
        locator: RepositoryLocator,
        default_branch: str = "master",
        attribution_timeout: Optional[float] = None,
    ) -> None:
        self.locator = locator
        self.default_branch = default_branch
        self.attribution_timeout = attribution_timeout

    def page_context(self, location: Location) -> pages.PageContext:
        return pages.PageContext(location.name, location.mount_prefix)

    def _dispatch(self, req: MatchaRequest, path: str) -> Iterable[bytes]:
        location = self.locator.locate(path)
        try:
            route_path = "/" + location.in_repo_path
            for pattern, handler in self.routes:
                mat = pattern.match(route_path)
                if mat:
                    logger.info(
                        "Handling %s for repository %s", handler.__name__, location.name
                    )
                    return handler(req, self, location, mat)
            return [req.not_found("Not found")]
        finally:
            if self.locator.cache is None:
                location.repo.close()

    def __call__(
        self, environ: WSGIEnvironment, start_response: StartResponse
    ) -> Iterable[bytes]:
        """Handle WSGI request."""
        req = MatchaRequest(environ, start_response)
        if environ["REQUEST_METHOD"] not in ("GET", "HEAD"):
            return [req.method_not_allowed("Sorry, that method is not supported")]
        # PEP 3333 hands us the raw bytes of the path decoded as latin-1.
        path = environ.get("PATH_INFO", "/").encode("latin-1").decode("utf-8", "replace")
        try:
            return self._dispatch(req, path)
        except NotFoundError as e:
            return [req.not_found(e.message)]
        except AttributionCancelled as e:
            return [req.unavailable(f"History walk timed out: {e}")]
        except StoreError:
            logger.exception("Error handling %s", path)
            return [req.error("Internal server error")]


def make_app(settings: Settings) -> MatchaApplication:
    """Create the application for a set of Settings."""
    locator = RepositoryLocator(
        settings.root_dir, cache=RepositoryCache(max_entries=settings.cache_size)
    )
    return MatchaApplication(
        locator,
        default_branch=settings.default_branch,
        attribution_timeout=settings.attribution_timeout,
    )


class ServerHandlerLogger(ServerHandler):
    """ServerHandler that uses matcha's logger for logging exceptions."""

    def log_exception(
        self,
        exc_info: Union[
            tuple[type[BaseException], BaseException, TracebackType],
            tuple[None, None, None],
            None,
        ],
    ) -> None:
        logger.exception(
            "Exception happened during processing of request",
            exc_info=exc_info,
        )

    def log_message(self, format: str, *args: object) -> None:
        logger.info(format, *args)

    def log_error(self, *args: object) -> None:
        logger.error(*args)


class WSGIRequestHandlerLogger(WSGIRequestHandler):
    """WSGIRequestHandler that uses matcha's logger."""

    def log_message(self, format: str, *args: object) -> None:
        logger.info(format, *args)

    def log_error(self, *args: object) -> None:  # type: ignore[override]
        logger.error(*args)

    def handle(self) -> None:
        """Handle a single HTTP request."""
        self.raw_requestline = self.rfile.readline()
        if not self.parse_request():  # An error code has been sent, just exit
            return

        handler = ServerHandlerLogger(
            self.rfile,
            self.wfile,  # type: ignore
            self.get_stderr(),
            self.get_environ(),
        )
        handler.request_handler = self  # type: ignore  # backpointer for logging
        handler.run(self.server.get_app())  # type: ignore


class ThreadingWSGIServerLogger(socketserver.ThreadingMixIn, WSGIServer):
    """WSGIServer handling each request on its own thread."""

    daemon_threads = True

    def handle_error(self, request: object, client_address: tuple[str, int]) -> None:
        logger.exception(
            f"Exception happened during processing of request from {client_address!s}"
        )


def main(argv: list[str] = sys.argv) -> None:
    """Entry point for starting the web viewer."""
    settings = parse_settings(argv[1:])

    log_utils.default_logging_config()
    app = make_app(settings)
    server = make_server(
        settings.listen_address,
        settings.port,
        app,
        handler_class=WSGIRequestHandlerLogger,
        server_class=ThreadingWSGIServerLogger,
    )
    logger.info(
        "Serving repositories below %s on %s:%d",
        app.locator.root_dir,
        settings.listen_address or "*",
        settings.port,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
        if app.locator.cache is not None:
            app.locator.cache.clear()


if __name__ == "__main__":
    main()
