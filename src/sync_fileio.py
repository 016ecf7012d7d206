#!/usr/bin/env python3
"""Best-effort file helpers whose failures are logged instead of raised."""

import logging
import os
import shutil
from contextlib import contextmanager


@contextmanager
def closing_logged(resource, msg, report=None):
    """Yield ``resource`` and always close it.

    A failure from ``close()`` goes to ``report`` (``logging.error`` when
    omitted) so it never masks the outcome of the ``with`` block.
    """
    report = report or logging.error
    try:
        yield resource
    finally:
        if resource is not None:
            try:
                resource.close()
            except Exception as e:
                report(f"{msg}: {e}")


def remove_logged(path, report=None):
    """Delete a file if present; report anything other than 'not found'."""
    report = report or logging.error
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        report(f"Remove failed for {path}: {e}")


def remove_tree_logged(path, report=None):
    report = report or logging.error
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        report(f"RemoveAll failed for {path}: {e}")


def makedirs_logged(path, report=None):
    """Create ``path`` and parents; return False if that failed."""
    report = report or logging.error
    try:
        os.makedirs(path, exist_ok=True)
        return True
    except OSError as e:
        report(f"MkdirAll failed for {path}: {e}")
        return False
