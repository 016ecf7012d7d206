import os

import pytest

import game_launcher
from fakes import FakeRomM, FakeSettings
from game_launcher import GameLauncher
from library_manager import LibraryManager
from retroarch_interface import FLATPAK_COMMAND, LaunchError
from romm_models import Game

GAME = Game(id=12, title='Chrono Trigger', full_path='roms/snes/Chrono Trigger.sfc', platform_slug='snes')


def _launcher(tmp_path, monkeypatch, exe='', select=None, cheevos=('me', 'pw')):
    settings = FakeSettings(library_path=str(tmp_path / 'lib'), retroarch_executable=exe, cheevos=cheevos)
    romm = FakeRomM([GAME])
    library = LibraryManager(settings, romm)
    calls = []

    def fake_launch(exe_path, rom_path, cheevos_user, cheevos_pass, **kwargs):
        calls.append((exe_path, rom_path, cheevos_user, cheevos_pass, kwargs))
        return 'process'

    monkeypatch.setattr(game_launcher.retroarch_interface, 'launch', fake_launch)
    return GameLauncher(settings, romm, library, select_executable=select), calls


def _download(launcher, name='Chrono Trigger.sfc'):
    rom_dir = launcher.library.get_rom_dir(GAME)
    os.makedirs(rom_dir, exist_ok=True)
    path = os.path.join(rom_dir, name)
    with open(path, 'wb') as f:
        f.write(b'rom')
    return path


def test_play_rom_launches_with_cheevos(tmp_path, monkeypatch):
    exe = tmp_path / 'retroarch'
    exe.write_bytes(b'')
    launcher, calls = _launcher(tmp_path, monkeypatch, exe=str(exe))
    rom = _download(launcher)

    assert launcher.play_rom(12, core_override='bsnes_libretro') == 'process'

    exe_path, rom_path, user, password, kwargs = calls[0]
    assert (exe_path, rom_path, user, password) == (str(exe), rom, 'me', 'pw')
    assert kwargs['core_override'] == 'bsnes_libretro'
    assert kwargs['platform_slug'] == 'snes'


def test_play_rom_accepts_flatpak_command(tmp_path, monkeypatch):
    launcher, calls = _launcher(tmp_path, monkeypatch, exe=FLATPAK_COMMAND)
    _download(launcher)
    launcher.play_rom(12)
    assert calls[0][0] == FLATPAK_COMMAND


def test_play_rom_needs_download(tmp_path, monkeypatch):
    launcher, calls = _launcher(tmp_path, monkeypatch, exe=str(tmp_path))
    with pytest.raises(LaunchError) as exc_info:
        launcher.play_rom(12)
    assert 'please download it first' in str(exc_info.value)
    assert calls == []


def test_play_rom_checks_configured_executable(tmp_path, monkeypatch):
    launcher, calls = _launcher(tmp_path, monkeypatch, exe=str(tmp_path / 'missing'))
    _download(launcher)
    with pytest.raises(LaunchError):
        launcher.play_rom(12)
    assert calls == []


def test_play_rom_asks_for_executable(tmp_path, monkeypatch):
    exe = tmp_path / 'retroarch'
    exe.write_bytes(b'')
    launcher, calls = _launcher(tmp_path, monkeypatch, select=lambda: str(exe))
    _download(launcher)

    launcher.play_rom(12)

    assert calls[0][0] == str(exe)
    assert launcher.settings.get_retroarch_executable() == str(exe)


def test_play_rom_selection_cancelled(tmp_path, monkeypatch):
    launcher, calls = _launcher(tmp_path, monkeypatch, select=lambda: '')
    _download(launcher)
    with pytest.raises(LaunchError) as exc_info:
        launcher.play_rom(12)
    assert 'cancelled' in str(exc_info.value)


def test_play_rom_without_library(tmp_path, monkeypatch):
    launcher, _ = _launcher(tmp_path, monkeypatch)
    launcher.settings.library_path = ''
    with pytest.raises(LaunchError):
        launcher.play_rom(12)


def test_launch_errors_are_wrapped(tmp_path, monkeypatch):
    exe = tmp_path / 'retroarch'
    exe.write_bytes(b'')
    launcher, _ = _launcher(tmp_path, monkeypatch, exe=str(exe))
    _download(launcher)

    def broken(*args, **kwargs):
        raise LaunchError('core missing')

    monkeypatch.setattr(game_launcher.retroarch_interface, 'launch', broken)
    with pytest.raises(LaunchError) as exc_info:
        launcher.play_rom(12)
    assert str(exc_info.value) == 'failed to launch game: core missing'


def test_find_rom_path_uses_platform(tmp_path, monkeypatch):
    launcher, _ = _launcher(tmp_path, monkeypatch)
    path = _download(launcher, 'renamed.sfc')
    _download(launcher, 'aaa.nes')
    assert launcher.find_rom_path(GAME, launcher.library.get_rom_dir(GAME)) == path
