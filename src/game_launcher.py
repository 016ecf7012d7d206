#!/usr/bin/env python3
"""Starting a downloaded game in RetroArch."""

import logging
import os

import retroarch_interface
from library_manager import find_rom_path
from retroarch_interface import LaunchError


class GameLauncher:
    """Find a game's local ROM and hand it to RetroArch

    Args:
        settings: SettingsManager
        romm: RomMService (anything with ``get_rom``)
        library: LibraryManager used to locate the game folder
        on_event: Optional ``callback(event, data)`` for play status events
        select_executable: Optional callable asking the user for the
            RetroArch binary when none is configured
    """

    def __init__(self, settings, romm, library, on_event=None, select_executable=None):
        self.settings = settings
        self.romm = romm
        self.library = library
        self.on_event = on_event
        self.select_executable = select_executable

    def find_rom_path(self, game, rom_dir):
        return find_rom_path(rom_dir, game.full_path, game.platform_slug)

    def _resolve_executable(self):
        exe_path = self.settings.get_retroarch_executable()
        if exe_path:
            if not os.path.exists(exe_path) and not retroarch_interface.is_flatpak_command(exe_path):
                raise LaunchError(f"retroarch executable not found at configured path: {exe_path}")
            return exe_path

        if self.select_executable is None:
            raise LaunchError("retroarch not configured")
        exe_path = self.select_executable()
        if not exe_path:
            raise LaunchError("launch cancelled: RetroArch executable not selected")
        self.settings.set_retroarch_executable(exe_path)
        return exe_path

    def play_rom(self, rom_id, core_override=None):
        """Launch a downloaded ROM, optionally forcing a libretro core

        Returns:
            The running emulator process
        """
        if not self.settings.get_library_path():
            raise LaunchError("library path is not configured")

        logging.info(f"play_rom: Fetching game info for ID {rom_id}")
        game = self.romm.get_rom(rom_id)

        rom_dir = self.library.get_rom_dir(game)
        rom_path = self.find_rom_path(game, rom_dir)
        logging.info(f"play_rom: {game.title} -> {rom_path or 'nothing'} in {rom_dir}")
        if not rom_path:
            raise LaunchError(f"no valid ROM file found in {rom_dir}, please download it first")

        exe_path = self._resolve_executable()
        cheevos_user, cheevos_pass = self.settings.get_cheevos_credentials()

        try:
            return retroarch_interface.launch(
                exe_path, rom_path, cheevos_user, cheevos_pass,
                core_override=core_override,
                platform_slug=game.platform_slug,
                on_event=self.on_event,
            )
        except LaunchError as e:
            raise LaunchError(f"failed to launch game: {e}") from e
