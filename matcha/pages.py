# pages.py -- HTML pages for the matcha web viewer
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

"""HTML rendering for the web viewer.

Everything here is presentation: the functions take already-resolved git
objects and return markup. All text coming from a repository is escaped.
"""

__all__ = [
    "PGP_SIGNATURE_END",
    "Breadcrumb",
    "PageContext",
    "TreeRow",
    "blob_page",
    "branches_page",
    "cleanup_commit_message",
    "commit_page",
    "commits_page",
    "entry_kind",
    "format_date",
    "format_duration",
    "path_breadcrumb",
    "ref_revision",
    "relative_time",
    "split_commit_message",
    "tags_page",
    "tree_page",
]

import datetime
import stat
import time
from collections.abc import Iterable, Sequence
from html import escape
from typing import NamedTuple, Optional, Union
from urllib.parse import quote

from dulwich.objects import S_ISGITLINK, Commit

from .revision import TagInfo

PGP_SIGNATURE_END = "-----END PGP SIGNATURE-----"

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


def _text(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


def cleanup_commit_message(message: Union[str, bytes]) -> str:
    """Strip whitespace and any leading PGP signature block from a message."""
    message = _text(message).strip()
    i = message.find(PGP_SIGNATURE_END)
    if i >= 0:
        message = message[i + len(PGP_SIGNATURE_END) :]
    return message


def split_commit_message(message: Union[str, bytes]) -> tuple[str, str]:
    """Split a commit message into its summary line and description."""
    parts = cleanup_commit_message(message).split("\n", 1)
    summary = parts[0].strip()
    if len(parts) < 2:
        return summary, ""
    return summary, parts[1].strip()


class Breadcrumb(NamedTuple):
    name: str
    path: str


def path_breadcrumb(path: str) -> list[Breadcrumb]:
    """Return one item per directory leading up to path."""
    names = [name for name in path.strip("/").split("/") if name]
    return [
        Breadcrumb(name, "/".join(names[: i + 1])) for i, name in enumerate(names)
    ]


def format_duration(seconds: float) -> str:
    if seconds < _MINUTE:
        return f"{int(seconds)} seconds"
    if seconds < _HOUR:
        return f"{int(seconds // _MINUTE)} minutes"
    if seconds < _DAY:
        return f"{int(seconds // _HOUR)} hours"
    return f"{int(seconds // _DAY)} days"


def format_date(when: datetime.datetime, age: float) -> str:
    # Only show the year for things older than a year.
    if age < 365 * _DAY:
        return f"{when:%b} {when.day}"
    return f"{when:%b} {when.day}, {when.year}"


def relative_time(timestamp: int, tz_offset: int = 0, now: Optional[float] = None) -> str:
    """Render a timestamp as a <relative-time> element.

    Args:
      timestamp: Seconds since the epoch
      tz_offset: Offset from UTC in seconds, as stored in commits
      now: Current time, defaults to time.time()
    """
    if now is None:
        now = time.time()
    tz = datetime.timezone(datetime.timedelta(seconds=tz_offset))
    when = datetime.datetime.fromtimestamp(timestamp, tz)
    age = now - timestamp
    if 0 <= age < 30 * _DAY:
        label = format_duration(age) + " ago"
    else:
        label = "on " + format_date(when, age)
    full = when.strftime("%b %d, %Y, %H:%M %z")
    return (
        f'<relative-time datetime="{when.isoformat()}" title="{escape(full)}">'
        f"{escape(label)}</relative-time>"
    )


def entry_kind(mode: int) -> str:
    """Short label for a tree entry mode."""
    if stat.S_ISDIR(mode):
        return "dir"
    if S_ISGITLINK(mode):
        return "submodule"
    if stat.S_ISLNK(mode):
        return "link"
    if mode & 0o111:
        return "exec"
    return "file"


class PageContext(NamedTuple):
    """What every page needs to know about where it is mounted.

    Attributes:
      repo_name: Name of the repository, shown in the header
      mount_prefix: URL prefix of the repository, "" at the root
      now: Time used for relative dates, None for the current time
    """

    repo_name: str
    mount_prefix: str = ""
    now: Optional[float] = None

    def url(self, *parts: str) -> str:
        path = "/".join(quote(p.strip("/")) for p in parts if p.strip("/"))
        return f"{self.mount_prefix}/{path}"


class TreeRow(NamedTuple):
    """One line of a tree listing."""

    name: str
    path: str
    mode: int
    last_commit: Optional[Commit]


def _layout(ctx: PageContext, title: str, body: Iterable[str]) -> str:
    return "".join(
        [
            "<!DOCTYPE html>\n<html>\n<head>\n",
            '<meta charset="utf-8">\n',
            f"<title>{escape(title)} - {escape(ctx.repo_name)}</title>\n",
            "</head>\n<body>\n",
            '<header><a href="',
            escape(ctx.url()),
            '">',
            escape(ctx.repo_name),
            '</a> <nav><a href="',
            escape(ctx.url("branches")),
            '">branches</a> <a href="',
            escape(ctx.url("tags")),
            '">tags</a></nav></header>\n<main>\n',
            *body,
            "</main>\n</body>\n</html>\n",
        ]
    )


def _breadcrumb_html(ctx: PageContext, revision: str, path: str) -> str:
    parts = [f'<a href="{escape(ctx.url("tree", revision))}">{escape(ctx.repo_name)}</a>']
    for item in path_breadcrumb(path):
        href = ctx.url("tree", revision, item.path)
        parts.append(f'<a href="{escape(href)}">{escape(item.name)}</a>')
    return '<nav class="breadcrumb">' + " / ".join(parts) + "</nav>\n"


def _commit_line(ctx: PageContext, commit: Optional[Commit]) -> str:
    if commit is None:
        return ""
    summary, _ = split_commit_message(commit.message)
    href = ctx.url("commit", commit.id.decode("ascii"))
    return (
        f'<a href="{escape(href)}">{escape(summary)}</a> '
        f"{relative_time(commit.commit_time, commit.commit_timezone, ctx.now)}"
    )


def tree_page(
    ctx: PageContext,
    revision: str,
    path: str,
    rows: Sequence[TreeRow],
    last_commit: Optional[Commit],
    readme: Optional[str] = None,
) -> str:
    """Render a directory listing with the last commit of every entry."""
    body = [_breadcrumb_html(ctx, revision, path)]
    body.append(f'<div class="last-commit">{_commit_line(ctx, last_commit)}</div>\n')
    body.append('<table class="tree">\n')
    for row in rows:
        kind = entry_kind(row.mode)
        if kind == "dir":
            name = f'<a href="{escape(ctx.url("tree", revision, row.path))}">{escape(row.name)}/</a>'
        elif kind == "submodule":
            name = escape(row.name)
        else:
            name = f'<a href="{escape(ctx.url("blob", revision, row.path))}">{escape(row.name)}</a>'
        body.append(
            f'<tr class="{kind}"><td>{kind}</td><td>{name}</td>'
            f"<td>{_commit_line(ctx, row.last_commit)}</td></tr>\n"
        )
    body.append("</table>\n")
    if readme is not None:
        body.append(f'<section class="readme"><pre>{escape(readme)}</pre></section>\n')
    return _layout(ctx, path or revision, body)


def blob_page(
    ctx: PageContext,
    revision: str,
    path: str,
    contents: Optional[str],
) -> str:
    """Render a file; contents is None for binary files."""
    dirname, _, filename = path.rpartition("/")
    body = [_breadcrumb_html(ctx, revision, dirname)]
    raw_href = ctx.url("raw", revision, path)
    body.append(
        f'<h1>{escape(filename)}</h1> <a href="{escape(raw_href)}">raw</a>\n'
    )
    if contents is None:
        body.append('<p class="binary">Binary file</p>\n')
    else:
        ext = filename.rpartition(".")[2] if "." in filename else ""
        body.append(
            f'<pre class="blob" data-extension="{escape(ext)}">{escape(contents)}</pre>\n'
        )
    return _layout(ctx, path, body)


def ref_revision(name: str, sha: Optional[bytes]) -> Optional[str]:
    """Return the revision to put in links for the ref called name.

    Routes take the revision as a single path segment, so a name containing
    "/" is linked through the object it points at instead. Returns None if
    there is nothing to link to.
    """
    if "/" not in name:
        return name
    if sha is None:
        return None
    return sha.decode("ascii")


def branches_page(ctx: PageContext, branches: Sequence[tuple[str, bytes]]) -> str:
    """Render the branch list; branches are (name, head sha) pairs."""
    body = ["<h1>Branches</h1>\n<ul>\n"]
    for name, sha in branches:
        revision = ref_revision(name, sha) or name
        href = ctx.url("tree", revision)
        log_href = ctx.url("commits", revision)
        body.append(
            f'<li><a href="{escape(href)}">{escape(name)}</a> '
            f'<a href="{escape(log_href)}">commits</a></li>\n'
        )
    body.append("</ul>\n")
    return _layout(ctx, "Branches", body)


def tags_page(ctx: PageContext, tags: Sequence[TagInfo]) -> str:
    body = ["<h1>Tags</h1>\n<ul>\n"]
    for info in tags:
        revision = ref_revision(info.name, info.commit.id if info.commit else None)
        if revision is None:
            body.append(f"<li>{escape(info.name)}")
        else:
            body.append(
                f'<li><a href="{escape(ctx.url("tree", revision))}">{escape(info.name)}</a>'
            )
        if info.tag is not None:
            summary, description = split_commit_message(info.tag.message or b"")
            if info.tag.tagger:
                body.append(f" by {escape(_text(info.tag.tagger))}")
            if info.tag.tag_time is not None:
                body.append(
                    " " + relative_time(info.tag.tag_time, info.tag.tag_timezone or 0, ctx.now)
                )
            body.append(f"<p>{escape(summary)}</p>")
            if description:
                body.append(f"<pre>{escape(description)}</pre>")
        body.append("</li>\n")
    body.append("</ul>\n")
    return _layout(ctx, "Tags", body)


def commits_page(ctx: PageContext, revision: str, commits: Iterable[Commit]) -> str:
    body = [f"<h1>Commits on {escape(revision)}</h1>\n<ul>\n"]
    for commit in commits:
        body.append(
            f"<li>{_commit_line(ctx, commit)} "
            f"<span class=\"author\">{escape(_text(commit.author))}</span></li>\n"
        )
    body.append("</ul>\n")
    return _layout(ctx, f"Commits on {revision}", body)


def commit_page(ctx: PageContext, commit: Commit, diff: str) -> str:
    commit_id = commit.id.decode("ascii")
    summary, description = split_commit_message(commit.message)
    body = [f"<h1>{escape(summary)}</h1>\n"]
    if description:
        body.append(f'<pre class="description">{escape(description)}</pre>\n')
    body.append(
        f"<p>{escape(_text(commit.author))} committed "
        f"{relative_time(commit.commit_time, commit.commit_timezone, ctx.now)}</p>\n"
    )
    body.append(f'<p>commit <a href="{escape(ctx.url("tree", commit_id))}">{commit_id}</a>')
    for parent in commit.parents:
        parent_id = parent.decode("ascii")
        body.append(
            f' parent <a href="{escape(ctx.url("commit", parent_id))}">{parent_id}</a>'
        )
    body.append("</p>\n")
    body.append(f'<pre class="diff">{escape(diff)}</pre>\n')
    return _layout(ctx, summary, body)
