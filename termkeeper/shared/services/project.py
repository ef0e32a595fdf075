"""Project fingerprinting: map a project path to a stable token.

The fingerprint is what goes into a tab title instead of the raw path.
It hashes the literal path text: /a/b and /a/b/ (or a symlinked alias)
are different projects as far as session lookup is concerned.
"""
from __future__ import annotations

import hashlib
import logging
import posixpath
from typing import Optional

logger = logging.getLogger(__name__)

NO_PROJECT = "NO_PROJECT"
FALLBACK_PREFIX = "BASENAME_"
FALLBACK_FAILED = "PROJECT_HASH_GENERATION_FAILED"


def project_fingerprint(project_path: Optional[str]) -> str:
    """Return the SHA-256 hex digest of the path, or NO_PROJECT.

    Never raises. If the path cannot be hashed (e.g. it carries lone
    surrogates from a badly decoded filename) a ``BASENAME_`` token is
    returned, which can never equal a 64-char hex digest.
    """
    if not project_path:
        return NO_PROJECT
    try:
        return hashlib.sha256(project_path.encode("utf-8")).hexdigest()
    except (UnicodeError, ValueError) as exc:
        logger.warning(
            "Failed to hash project path %r (%s); using basename fallback",
            project_path, exc,
        )
    basename = posixpath.basename(project_path.rstrip("/"))
    if not basename:
        return FALLBACK_FAILED
    return FALLBACK_PREFIX + basename


def session_display_name(project_path: Optional[str], tag: str) -> str:
    """Human-facing label for a session, e.g. ``"myproject: build"``."""
    if project_path:
        name = posixpath.basename(project_path.rstrip("/")) or "UnnamedProject"
    else:
        name = "Global"
    return f"{name}: {tag}"
