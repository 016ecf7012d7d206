#!/usr/bin/env python3
"""RomM access bound to the user's settings, plus the cover art cache."""

import base64
import logging
import os
from pathlib import Path
from urllib.parse import urlparse

from retroarch_interface import identify_platform
from romm_client import RomMAuthError, RomMClient, RomMError
from sync_constants import COVERS_CACHE_DIR, PLATFORMS_CACHE_DIR

PLATFORM_BATCH_SIZE = 100
PLATFORM_MAX_SCAN = 2000
PLATFORM_ICON_EXTENSIONS = ('.svg', '.ico', '.png', '.jpg')

MIME_TYPES = {
    '.svg': 'image/svg+xml',
    '.ico': 'image/x-icon',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
}


def to_data_uri(data, ext):
    mime_type = MIME_TYPES.get(ext.lower(), 'application/octet-stream')
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def is_platform_supported(platform):
    """Platforms worth showing: they have games and RetroArch can run them"""
    return platform.rom_count > 0 and bool(
        identify_platform(platform.name) or identify_platform(platform.slug))


class RomMService:
    """RomM operations using the host and credentials from SettingsManager"""

    def __init__(self, settings, client_factory=RomMClient, covers_dir=None, platforms_dir=None):
        self.settings = settings
        self.client_factory = client_factory
        self.covers_dir = Path(covers_dir) if covers_dir else COVERS_CACHE_DIR
        self.platforms_dir = Path(platforms_dir) if platforms_dir else PLATFORMS_CACHE_DIR
        self.client = client_factory(settings.get_romm_host())

    def login(self):
        """Log in with the stored settings and return the access token"""
        host = self.settings.get_romm_host()
        username, password = self.settings.get_credentials()
        if not host or not username or not password:
            raise RomMAuthError("missing configuration: host, username, or password")

        # Settings may have pointed us at another server since startup
        if not self.client.base_url or self.client.base_url != host.rstrip('/'):
            logging.info(f"RomM host changed, reconnecting to {host}")
            self.client = self.client_factory(host)

        return self.client.login(username, password)

    def get_library(self, limit, offset, platform_id=0):
        return self.client.get_library(limit, offset, platform_id)

    def get_rom(self, rom_id):
        return self.client.get_rom(rom_id)

    def get_server_saves(self, rom_id):
        return self.client.get_saves(rom_id)

    def get_server_states(self, rom_id):
        return self.client.get_states(rom_id)

    def get_platforms(self, limit, offset):
        """One page of supported platforms

        The server cannot filter for us, so pages of ``PLATFORM_BATCH_SIZE``
        are scanned (at most ``PLATFORM_MAX_SCAN`` platforms) and filtered
        locally.

        Returns:
            (platforms, supported_total) tuple
        """
        supported = []
        found_count = 0
        current_offset = 0

        while True:
            batch, total_on_server = self.client.get_platforms(PLATFORM_BATCH_SIZE, current_offset)
            if not batch:
                break

            for platform in batch:
                if is_platform_supported(platform):
                    if found_count >= offset and len(supported) < limit:
                        supported.append(platform)
                    found_count += 1

            current_offset += len(batch)

            if current_offset >= total_on_server or current_offset >= PLATFORM_MAX_SCAN:
                break
            if len(supported) >= limit:
                # Page is full; keep counting so the total stays accurate
                found_count += self._count_remaining_supported(total_on_server, current_offset)
                break

        return supported, found_count

    def _count_remaining_supported(self, total_on_server, current_offset):
        count = 0
        while current_offset < total_on_server and current_offset < PLATFORM_MAX_SCAN:
            try:
                batch, _ = self.client.get_platforms(PLATFORM_BATCH_SIZE, current_offset)
            except RomMError as e:
                logging.warning(f"Stopped counting platforms at offset {current_offset}: {e}")
                break
            if not batch:
                break
            count += sum(1 for platform in batch if is_platform_supported(platform))
            current_offset += len(batch)
        return count

    def get_cover(self, rom_id, cover_url):
        """Cover art for a game as a data URI, '' when the game has none"""
        if not cover_url:
            return ''

        ext = os.path.splitext(urlparse(cover_url).path)[1] or '.jpg'
        self.covers_dir.mkdir(parents=True, exist_ok=True)
        cache_path = self.covers_dir / f"{rom_id}{ext}"

        if cache_path.exists():
            data = cache_path.read_bytes()
        else:
            data = self.client.download_cover(cover_url)
            try:
                cache_path.write_bytes(data)
            except OSError as e:
                logging.warning(f"Could not cache cover {cache_path}: {e}")

        return to_data_uri(data, ext)

    def get_platform_cover(self, platform_id, slug):
        """Platform icon as a data URI, '' when there is no slug"""
        if not slug:
            return ''

        self.platforms_dir.mkdir(parents=True, exist_ok=True)
        for ext in PLATFORM_ICON_EXTENSIONS:
            cache_path = self.platforms_dir / f"{platform_id}{ext}"
            if cache_path.exists():
                try:
                    return to_data_uri(cache_path.read_bytes(), ext)
                except OSError as e:
                    logging.debug(f"Unreadable cached icon {cache_path}: {e}")

        data, ext = self._download_platform_icon(slug)
        if data is None:
            raise RomMError(f"failed to download cover for platform {slug}")

        cache_path = self.platforms_dir / f"{platform_id}{ext}"
        try:
            cache_path.write_bytes(data)
        except OSError as e:
            logging.warning(f"Could not cache platform icon {cache_path}: {e}")
        return to_data_uri(data, ext)

    def _download_platform_icon(self, slug):
        slugs = [slug]
        if '-' in slug:
            slugs.append(slug.replace('-', '_'))

        for candidate in slugs:
            for ext in PLATFORM_ICON_EXTENSIONS:
                try:
                    return self.client.download_cover(f"/assets/platforms/{candidate}{ext}"), ext
                except RomMError as e:
                    logging.debug(f"No platform icon at {candidate}{ext}: {e}")
        return None, ''

    def upload_save(self, rom_id, emulator, filename, content):
        self.client.upload_save(rom_id, emulator, filename, content)

    def upload_state(self, rom_id, emulator, filename, content):
        self.client.upload_state(rom_id, emulator, filename, content)

    def download_save(self, file_path):
        return self.client.download_save(file_path)

    def download_state(self, file_path):
        return self.client.download_state(file_path)
