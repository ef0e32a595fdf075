"""Encode session identity into tab titles and recover it again.

The terminal's title bar is the only place a session's identity can be
kept, so the format below is a wire format: tabs created by older
releases must keep decoding. Example:

    ::TERMINATOR_SESSION::::PROJECT_HASH=3f2a...::TAG=build%20api::TTY_PATH=/dev/ttys003::PID=4242::

Only TAG and TTY_PATH are percent-encoded. PROJECT_HASH is always
present; a global session writes the NO_PROJECT sentinel.
"""
from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import quote, unquote

from termkeeper.engine.errors import InvalidTagError
from termkeeper.shared.models.session import SessionIdentity
from termkeeper.shared.services.project import NO_PROJECT, project_fingerprint

logger = logging.getLogger(__name__)

SESSION_PREFIX = "::TERMINATOR_SESSION::"
DELIMITER = "::"

KEY_PROJECT_HASH = "PROJECT_HASH"
KEY_TAG = "TAG"
KEY_TTY_PATH = "TTY_PATH"
KEY_PID = "PID"

# Query-component characters minus the ones that would break parsing
# (":" delimiter, "=" key separator) or are ambiguous in titles.
_TAG_SAFE = "!$'()*+,-./;?@_~"
# Path characters; "/" stays readable, ":" is escaped.
_TTY_SAFE = "/!$&'()*+,-.=@_~"
_PID_RE = re.compile(r"[+-]?\d+")


def encode_session_title(
    project_path: Optional[str],
    tag: str,
    tty_path: Optional[str] = None,
    pid: Optional[int] = None,
) -> str:
    """Build the title string for a managed tab."""
    if not tag:
        raise InvalidTagError(tag)

    parts = [
        SESSION_PREFIX,
        f"{KEY_PROJECT_HASH}={project_fingerprint(project_path)}",
        f"{KEY_TAG}={quote(tag, safe=_TAG_SAFE)}",
    ]
    if tty_path:
        parts.append(f"{KEY_TTY_PATH}={quote(tty_path, safe=_TTY_SAFE)}")
    if pid is not None:
        parts.append(f"{KEY_PID}={int(pid)}")

    # The prefix is a part of its own, so it is followed by an empty segment.
    title = DELIMITER.join(parts) + DELIMITER
    logger.debug("Generated session title: %s", title)
    return title


def decode_session_title(title: Optional[str]) -> Optional[SessionIdentity]:
    """Parse a tab title; None for anything that is not a managed session."""
    if not title or not title.startswith(SESSION_PREFIX):
        return None

    project_hash: Optional[str] = None
    tag: Optional[str] = None
    tty_path: Optional[str] = None
    pid: Optional[int] = None

    body = title[len(SESSION_PREFIX):]
    for segment in body.split(DELIMITER):
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key or not value:
            continue

        if key == KEY_PROJECT_HASH:
            project_hash = None if value == NO_PROJECT else value
        elif key == KEY_TAG:
            tag = unquote(value)
        elif key == KEY_TTY_PATH:
            tty_path = unquote(value)
        elif key == KEY_PID:
            if _PID_RE.fullmatch(value):
                pid = int(value)
        # Unknown keys come from newer releases; skip them.

    if not tag:
        logger.debug("Title has session prefix but no TAG: %s", title)
        return None

    return SessionIdentity(
        tag=tag,
        project_hash=project_hash,
        tty_path=tty_path,
        pid=pid,
    )


def is_managed_title(title: Optional[str]) -> bool:
    return decode_session_title(title) is not None


def matches_session(
    identity: SessionIdentity,
    project_path: Optional[str],
    tag: str,
) -> bool:
    """True when a decoded identity belongs to (project_path, tag)."""
    if identity.tag != tag:
        return False
    expected = project_fingerprint(project_path)
    actual = identity.project_hash or NO_PROJECT
    return actual == expected
