# log_utils.py -- Logging utilities for matcha
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

"""Logging utilities for matcha.

The query modules are usable as a library, so the ``matcha`` logger carries
a null handler until a program opts into output with
:func:`default_logging_config`. Modules only need ``getLogger``, which is
re-exported here.
"""

__all__ = [
    "TRACE_ENV",
    "default_logging_config",
    "getLogger",
    "remove_null_handler",
]

import logging
import os
import sys
from typing import Optional, Union

getLogger = logging.getLogger

TRACE_ENV = "MATCHA_TRACE"

_TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


class _NullHandler(logging.Handler):
    """No-op logging handler to avoid unexpected logging warnings."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_MATCHA_LOGGER = getLogger("matcha")
_MATCHA_LOGGER.addHandler(_NULL_HANDLER)


def _get_trace_target(environ: Optional[dict[str, str]] = None) -> Optional[Union[str, int]]:
    """Get the trace target from the MATCHA_TRACE environment variable.

    Returns:
        - None if tracing is disabled
        - 2 for stderr output (values "1", "2", "true")
        - str for an absolute file or directory path
    """
    if environ is None:
        environ = dict(os.environ)
    trace_value = environ.get(TRACE_ENV, "")

    if not trace_value or trace_value.lower() in ("0", "false"):
        return None

    if trace_value.lower() in ("1", "2", "true"):
        return 2

    if os.path.isabs(trace_value):
        return trace_value

    return None


def _configure_logging_from_trace(environ: Optional[dict[str, str]] = None) -> bool:
    """Configure DEBUG logging if tracing was requested.

    Returns True if trace configuration was successful, False otherwise.
    """
    trace_target = _get_trace_target(environ)
    if trace_target is None:
        return False

    if trace_target == 2:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format=_TRACE_FORMAT)
        return True

    assert isinstance(trace_target, str)
    if os.path.isdir(trace_target):
        filename = os.path.join(trace_target, f"trace.{os.getpid()}")
    else:
        filename = trace_target
    try:
        logging.basicConfig(
            level=logging.DEBUG, filename=filename, filemode="a", format=_TRACE_FORMAT
        )
    except OSError as e:
        sys.stderr.write(f"Warning: Failed to open {TRACE_ENV} file {filename}: {e}\n")
        return False
    return True


def default_logging_config(environ: Optional[dict[str, str]] = None) -> None:
    """Set up the default matcha loggers.

    Logs at INFO to stderr, unless MATCHA_TRACE asks for DEBUG tracing to
    stderr ("1", "2", "true"), to a file (absolute path) or to a
    per-process file inside a directory.
    """
    remove_null_handler()

    if not _configure_logging_from_trace(environ):
        logging.basicConfig(
            level=logging.INFO,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s: %(message)s",
        )


def remove_null_handler() -> None:
    """Remove the null handler from the matcha loggers."""
    _MATCHA_LOGGER.removeHandler(_NULL_HANDLER)
