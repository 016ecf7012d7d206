#!/usr/bin/env python3
"""Local ROM library: where downloaded games live and how they get there."""

import logging
import os
import time

from path_sanitizer import sanitize_path
from retroarch_interface import CORE_MAP, get_cores_for_platform
from sync_fileio import closing_logged, remove_logged, remove_tree_logged

CHUNK_SIZE = 1024 * 1024


class LibraryError(Exception):
    """Raised for library operations that cannot proceed"""
    pass


class DownloadProgress:
    """Track download progress with speed and ETA calculations"""

    def __init__(self, total_size, filename, game_id=None):
        self.total_size = total_size
        self.filename = filename
        self.game_id = game_id
        self.downloaded = 0
        self.start_time = time.time()

    def update(self, chunk_size):
        """Update progress with new chunk"""
        self.downloaded += chunk_size

        if self.total_size > 0:
            progress = self.downloaded / self.total_size
        else:
            # Unknown size: creep towards 90% per MB, never "done"
            progress = min(0.9, self.downloaded / (1024 * 1024))

        elapsed = time.time() - self.start_time
        if elapsed > 0:
            speed = self.downloaded / elapsed
            if self.total_size > 0 and speed > 0:
                eta = (self.total_size - self.downloaded) / speed
            else:
                eta = 0
        else:
            speed = 0
            eta = 0

        return {
            'game_id': self.game_id,
            'progress': min(progress, 1.0),
            'percentage': min(progress, 1.0) * 100,
            'downloaded': self.downloaded,
            'total': self.total_size if self.total_size > 0 else self.downloaded,
            'speed': speed,
            'eta': eta,
            'filename': self.filename,
        }


def _rom_candidates(rom_dir):
    try:
        names = sorted(os.listdir(rom_dir))
    except OSError:
        return []
    return [name for name in names
            if not name.startswith('.') and not name.endswith('.part')
            and os.path.isfile(os.path.join(rom_dir, name))]


def find_rom_path(rom_dir, full_path='', platform_slug=''):
    """Pick the playable file in a game folder, or '' if there is none

    Tries the server's own file name first, then a file whose extension maps
    to one of the platform's preferred cores, then any known ROM or zip.
    """
    names = _rom_candidates(rom_dir)
    if not names:
        return ''

    if full_path:
        base_name = os.path.basename(full_path.replace('\\', '/'))
        if base_name in names:
            return os.path.join(rom_dir, base_name)

    preferred = get_cores_for_platform(platform_slug) if platform_slug else []
    if preferred:
        for name in names:
            core = CORE_MAP.get(os.path.splitext(name)[1].lower())
            if core and core in preferred:
                return os.path.join(rom_dir, name)

    for name in names:
        ext = os.path.splitext(name)[1].lower()
        if ext in CORE_MAP or ext == '.zip':
            return os.path.join(rom_dir, name)
    return ''


class LibraryManager:
    """Downloads, locates and removes games under the configured library path"""

    def __init__(self, settings, romm):
        self.settings = settings
        self.romm = romm

    def _library_path(self):
        library_path = self.settings.get_library_path()
        if not library_path:
            raise LibraryError("library path is not configured")
        return library_path

    def get_rom_dir(self, game):
        """``<library>/<server folder>/<id>``; the server folder is sanitized"""
        rel_dir = sanitize_path(os.path.dirname(game.full_path.replace('\\', '/')))
        return os.path.normpath(os.path.join(self._library_path(), rel_dir, str(game.id)))

    def download_rom(self, rom_id, progress_callback=None, cancellation_checker=None):
        """Download a ROM into its library folder

        Data is streamed to ``<file>.part`` and moved into place only once
        complete, so an interrupted download never looks installed.

        Returns:
            Path of the downloaded file
        """
        self._library_path()
        game = self.romm.get_rom(rom_id)

        dest_dir = self.get_rom_dir(game)
        filename = os.path.basename(game.full_path.replace('\\', '/'))
        if not filename or filename in ('.', '..'):
            raise LibraryError(f"ROM {rom_id} has no usable file name: {game.full_path!r}")
        dest_path = os.path.join(dest_dir, filename)
        part_path = dest_path + '.part'

        try:
            os.makedirs(dest_dir, exist_ok=True)
        except OSError as e:
            raise LibraryError(f"failed to create destination directory: {e}") from e

        response, _ = self.romm.download_file(game)
        with closing_logged(response, "download_rom: Failed to close response"):
            total_size = int(response.headers.get('content-length') or 0) or game.file_size
            progress = DownloadProgress(total_size, filename, game.id)
            logging.info(f"Downloading {game.title or filename} to {dest_path}")

            try:
                with open(part_path, 'wb') as out:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if cancellation_checker and cancellation_checker():
                            raise LibraryError(f"download of ROM {rom_id} cancelled")
                        if not chunk:
                            continue
                        out.write(chunk)
                        info = progress.update(len(chunk))
                        if progress_callback:
                            progress_callback(info)
                os.replace(part_path, dest_path)
            except OSError as e:
                remove_logged(part_path)
                raise LibraryError(f"failed to save file: {e}") from e
            except BaseException:
                remove_logged(part_path)
                raise

        logging.info(f"Downloaded ROM {rom_id} ({progress.downloaded} bytes)")
        return dest_path

    def get_download_status(self, rom_id):
        """True when a playable file for the ROM is present locally"""
        if not self.settings.get_library_path():
            return False
        game = self.romm.get_rom(rom_id)
        rom_dir = self.get_rom_dir(game)
        if not os.path.isdir(rom_dir):
            return False
        return bool(find_rom_path(rom_dir))

    def find_rom_path(self, rom_dir, game=None):
        if game is None:
            return find_rom_path(rom_dir)
        return find_rom_path(rom_dir, game.full_path, game.platform_slug)

    def delete_rom(self, rom_id):
        """Remove a downloaded game folder, saves and states included"""
        self._library_path()
        game = self.romm.get_rom(rom_id)
        rom_dir = self.get_rom_dir(game)
        if not os.path.exists(rom_dir):
            return

        errors = []
        remove_tree_logged(rom_dir, report=errors.append)
        if errors:
            logging.error(f"delete_rom: Error during removal for ID {rom_id}: {errors[0]}")
            raise LibraryError(f"failed to delete ROM directory: {errors[0]}")
        logging.info(f"delete_rom: Successfully deleted ROM {rom_id} from library")
