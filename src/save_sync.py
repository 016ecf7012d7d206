#!/usr/bin/env python3
"""
Save and save-state transfer between the local library and RomM.

Files live at ``<rom dir>/saves/<core>/<file>`` and
``<rom dir>/states/<core>/<file>``, the layout RetroArch writes to when it
is launched with per-game save directories. Nothing here runs on its own:
every upload, download and delete is an explicit call.
"""

import logging
import os
import time

from path_sanitizer import is_within
from romm_models import FileItem
from sync_constants import (
    DIR_SAVES, DIR_STATES, DOLPHIN_CORE_DIR, DOLPHIN_REGIONS,
    LOCAL_NEWER, REMOTE_NEWER, SAME,
)
from sync_fileio import closing_logged
from timestamp_parser import TimestampParseError, format_timestamp, parse_timestamp


class SaveSyncError(Exception):
    """Raised when a save or state cannot be transferred or removed"""
    pass


class PathTraversalError(SaveSyncError):
    """Raised when a core or file name would leave the game's save folder"""
    pass


def dolphin_card_dir(region, card='Card A'):
    return os.path.join(DOLPHIN_CORE_DIR, 'User', 'GC', region, card)


# RomM stores GameCube memory card saves under the card name; the dolphin-emu
# core expects them in its own tree. NTSC-U is assumed.
DOLPHIN_CARD_REMAP = {
    'Card A': dolphin_card_dir('USA', 'Card A'),
    'Card B': dolphin_card_dir('USA', 'Card B'),
}


def validate_asset_path(core, filename):
    """Reduce ``core`` and ``filename`` to bare names

    Returns:
        (core, filename) tuple

    Raises:
        PathTraversalError: If either reduces to ``.`` or ``..``
    """
    core = os.path.basename(os.path.normpath((core or '').replace('\\', '/')))
    if core in ('', '.', '..'):
        raise PathTraversalError("invalid core name")

    filename = os.path.basename(os.path.normpath((filename or '').replace('\\', '/')))
    if filename in ('', '.', '..'):
        raise PathTraversalError("invalid filename")

    return core, filename


def _updated_at(value):
    return value if isinstance(value, str) else getattr(value, 'updated_at', '')


def compare(local, remote, tolerance=0):
    """Decide which of two copies of a file is newer

    Args:
        local: FileItem (or RFC 3339 string) for the local copy
        remote: ServerSave/ServerState (or timestamp string) for the server copy
        tolerance: Seconds of clock skew to treat as "same"

    Returns:
        'local_newer', 'remote_newer' or 'same'

    Raises:
        TimestampParseError: If either timestamp cannot be parsed
    """
    local_ts = parse_timestamp(_updated_at(local))
    remote_ts = parse_timestamp(_updated_at(remote))

    if tolerance:
        diff = (local_ts.seconds - remote_ts.seconds) + \
            (local_ts.nanosecond - remote_ts.nanosecond) / 1_000_000_000
        if abs(diff) <= tolerance:
            return SAME
        return LOCAL_NEWER if diff > 0 else REMOTE_NEWER

    if local_ts == remote_ts:
        return SAME
    return LOCAL_NEWER if local_ts > remote_ts else REMOTE_NEWER


def _scan_flat_core_files(core_name, core_dir):
    items = []
    try:
        names = sorted(os.listdir(core_dir))
    except OSError:
        return items

    for name in names:
        path = os.path.join(core_dir, name)
        if name.startswith('.') or os.path.isdir(path):
            continue
        try:
            updated_at = format_timestamp(os.path.getmtime(path))
        except OSError:
            updated_at = ''
        items.append(FileItem(name=name, core=core_name, updated_at=updated_at))
    return items


def _scan_core_dir(base_dir, core_name):
    core_dir = os.path.join(base_dir, core_name)
    if core_name != DOLPHIN_CORE_DIR:
        return _scan_flat_core_files(core_name, core_dir)

    items = []
    for region in DOLPHIN_REGIONS:
        rel_core = dolphin_card_dir(region)
        items.extend(_scan_flat_core_files(rel_core, os.path.join(base_dir, rel_core)))
    return items


class SaveSyncManager:
    """Explicit per-file save/state operations for downloaded games"""

    def __init__(self, library, romm):
        self.library = library
        self.romm = romm

    def _base_dir(self, game, sub_dir):
        return os.path.join(self.library.get_rom_dir(game), sub_dir)

    # Listing

    def get_saves(self, rom_id):
        return self._get_game_files(rom_id, DIR_SAVES)

    def get_states(self, rom_id):
        return self._get_game_files(rom_id, DIR_STATES)

    def _get_game_files(self, rom_id, sub_dir):
        game = self.romm.get_rom(rom_id)
        base_dir = self._base_dir(game, sub_dir)
        try:
            entries = sorted(os.listdir(base_dir))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise SaveSyncError(f"failed to list {sub_dir} for ROM {rom_id}: {e}") from e

        items = []
        for entry in entries:
            if os.path.isdir(os.path.join(base_dir, entry)):
                items.extend(_scan_core_dir(base_dir, entry))
        return items

    # Upload

    def upload_save(self, rom_id, core, filename):
        self._upload_asset(rom_id, core, filename, DIR_SAVES)

    def upload_state(self, rom_id, core, filename):
        self._upload_asset(rom_id, core, filename, DIR_STATES)

    def _local_asset_path(self, game, core, filename, sub_dir):
        base_dir = self._base_dir(game, sub_dir)
        file_path = os.path.normpath(os.path.join(base_dir, core, filename))
        if not is_within(base_dir, file_path):
            raise PathTraversalError("invalid path traversal detected")
        return file_path

    def _upload_asset(self, rom_id, core, filename, sub_dir):
        game = self.romm.get_rom(rom_id)
        file_path = self._local_asset_path(game, core, filename, sub_dir)

        try:
            with open(file_path, 'rb') as f:
                content = f.read()
        except OSError as e:
            raise SaveSyncError(f"failed to read local {sub_dir} file: {e}") from e

        if sub_dir == DIR_SAVES:
            self.romm.upload_save(rom_id, core, filename, content)
        else:
            self.romm.upload_state(rom_id, core, filename, content)

        # The server now holds this version; line the local mtime up with it
        now = time.time()
        try:
            os.utime(file_path, (now, now))
        except OSError as e:
            logging.error(f"upload_{sub_dir}: Failed to update local file time: {e}")

    # Download

    def download_server_save(self, rom_id, file_path, core, filename='', updated_at=''):
        return self._download_asset(rom_id, file_path, core, filename, updated_at, DIR_SAVES)

    def download_server_state(self, rom_id, file_path, core, filename='', updated_at=''):
        return self._download_asset(rom_id, file_path, core, filename, updated_at, DIR_STATES)

    def _prepare_asset_path(self, game, core, filename, sub_dir):
        core, filename = validate_asset_path(core, filename)
        core = DOLPHIN_CARD_REMAP.get(core, core)

        base_dir = self._base_dir(game, sub_dir)
        dest_dir = os.path.join(base_dir, core)
        if not is_within(base_dir, dest_dir):
            raise PathTraversalError("invalid path traversal detected")

        try:
            os.makedirs(dest_dir, exist_ok=True)
        except OSError as e:
            raise SaveSyncError(f"failed to create destination directory: {e}") from e
        return os.path.join(dest_dir, filename)

    def _download_asset(self, rom_id, file_path, core, filename, updated_at, sub_dir):
        game = self.romm.get_rom(rom_id)

        if sub_dir == DIR_SAVES:
            response, server_filename = self.romm.download_save(file_path)
        else:
            response, server_filename = self.romm.download_state(file_path)

        with closing_logged(response, f"download_{sub_dir}: Failed to close response"):
            dest_path = self._prepare_asset_path(game, core, filename or server_filename, sub_dir)
            try:
                with open(dest_path, 'wb') as out:
                    for chunk in response.iter_content(chunk_size=65536):
                        if chunk:
                            out.write(chunk)
            except OSError as e:
                raise SaveSyncError(f"failed to write local {sub_dir} file: {e}") from e

        if updated_at:
            self._set_file_time(dest_path, updated_at)
        logging.info(f"Downloaded {sub_dir} {os.path.basename(dest_path)} for ROM {rom_id}")
        return dest_path

    @staticmethod
    def _set_file_time(dest_path, updated_at):
        try:
            ts = parse_timestamp(updated_at)
        except TimestampParseError as e:
            logging.warning(f"Keeping current mtime for {dest_path}: {e}")
            return
        try:
            os.utime(dest_path, ns=(ts.seconds * 1_000_000_000 + ts.nanosecond,) * 2)
        except OSError as e:
            logging.error(f"Failed to update local file time for {dest_path}: {e}")

    # Housekeeping

    def delete_save(self, rom_id, core, filename):
        self._delete_game_file(rom_id, DIR_SAVES, core, filename)

    def delete_state(self, rom_id, core, filename):
        self._delete_game_file(rom_id, DIR_STATES, core, filename)

    def _delete_game_file(self, rom_id, sub_dir, core, filename):
        game = self.romm.get_rom(rom_id)
        file_path = self._local_asset_path(game, core, filename, sub_dir)
        try:
            os.remove(file_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise SaveSyncError(f"failed to delete file {file_path}: {e}") from e
        logging.info(f"Deleted {sub_dir} file {file_path}")

    validate_asset_path = staticmethod(validate_asset_path)
    compare = staticmethod(compare)
