"""
Sanitizing of server-supplied relative paths.

RomM reports paths such as ``full_path`` from whatever OS the server runs
on, so a path may use either slash style and may carry a Windows drive or
UNC prefix even when this client runs on Linux. ``sanitize_path`` turns any
such string into a relative, host-native path that cannot climb out of the
directory it is joined to.
"""

import os
import posixpath
import re

CURRENT_DIR = '.'

_DRIVE_RE = re.compile(r'^[A-Za-z]:')
_UNC_RE = re.compile(r'^//[^/]+/[^/]+')


def strip_volume_prefix(path: str) -> str:
    """
    Remove a leading Windows volume designator, whatever the host OS.

    Recognizes drive letters (``C:``) and UNC shares (``\\\\server\\share``).
    Backslashes are returned as forward slashes.

    Args:
        path: Raw path string

    Returns:
        The path without its volume prefix
    """
    p = path.replace('\\', '/')
    match = _UNC_RE.match(p) or _DRIVE_RE.match(p)
    if match:
        return p[match.end():]
    return p


def _strip_escaping_prefixes(p: str) -> str:
    # Stripping one prefix can expose another ("C:/D:/x", "C:../x") or
    # leave a "./" behind ("C:./x"), so normalize and run until nothing changes.
    while True:
        previous = p
        p = strip_volume_prefix(p)
        if p:
            p = posixpath.normpath(p)
        while p.startswith('../') or p == '..':
            p = p[3:] if p.startswith('../') else CURRENT_DIR
        p = p.lstrip('/')
        if p == previous:
            return p


def sanitize_path(raw_path: str) -> str:
    """
    Make a server-supplied path safe to join under a local root.

    Never raises: anything that reduces to nothing becomes ``"."``.

    Args:
        raw_path: Untrusted path, possibly absolute, with ``..`` segments,
            a drive letter or a UNC prefix

    Returns:
        Relative path in host-native separators, free of ``..`` segments
    """
    p = strip_volume_prefix(raw_path or '')
    p = posixpath.normpath(p) if p else CURRENT_DIR
    p = _strip_escaping_prefixes(p)

    if p in ('', CURRENT_DIR):
        return CURRENT_DIR

    return p.replace('/', os.sep)


def is_within(base, target) -> bool:
    """Return True if ``target`` lexically stays inside ``base``."""
    try:
        rel = os.path.relpath(os.path.normpath(target), os.path.normpath(base))
    except ValueError:
        # Different drives on Windows
        return False
    if os.path.isabs(rel):
        return False
    return rel != os.pardir and not rel.startswith(os.pardir + os.sep)
