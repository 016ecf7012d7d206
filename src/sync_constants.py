#!/usr/bin/env python3
"""Shared constants for RomM Library Sync."""

from pathlib import Path

APP_NAME = 'RomM-Library-Sync'
APP_VERSION = '0.4.0'

# Everything app-local lives under ~/.config
CONFIG_DIR = Path.home() / '.config' / 'romm-library-sync'
SETTINGS_FILE = CONFIG_DIR / 'settings.ini'
LOG_FILE = CONFIG_DIR / 'romm_sync.log'
CACHE_DIR = CONFIG_DIR / 'cache'
COVERS_CACHE_DIR = CACHE_DIR / 'covers'
PLATFORMS_CACHE_DIR = CACHE_DIR / 'platforms'

# Per-game asset folders next to the ROM
DIR_SAVES = 'saves'
DIR_STATES = 'states'

# Events emitted around an emulator session
EVENT_PLAY_STATUS = 'play-status'
EVENT_GAME_STARTED = 'game-started'
EVENT_GAME_EXITED = 'game-exited'

# Save/state comparison outcomes
LOCAL_NEWER = 'local_newer'
REMOTE_NEWER = 'remote_newer'
SAME = 'same'

CORE_PICO8 = 'retro8_libretro'
DOLPHIN_CORE_DIR = 'dolphin-emu'
DOLPHIN_REGIONS = ('USA', 'EUR', 'JPN')
