#!/usr/bin/env python3
"""
RetroArch integration: core selection, core downloads and game launching.
"""

import logging
import os
import platform
import re
import shutil
import subprocess
import sys
import tempfile
import threading
import zipfile
from pathlib import Path

import psutil
import requests

from path_sanitizer import is_within
from sync_constants import (
    CORE_PICO8, DIR_SAVES, DIR_STATES, EVENT_GAME_EXITED, EVENT_GAME_STARTED, EVENT_PLAY_STATUS,
)
from sync_fileio import closing_logged, makedirs_logged, remove_logged

BUILDBOT_URL = 'https://buildbot.libretro.com/nightly/{os_name}/{arch}/latest/{core_file}.zip'

FLATPAK_APP_ID = 'org.libretro.RetroArch'
FLATPAK_COMMAND = f'flatpak run {FLATPAK_APP_ID}'


class LaunchError(Exception):
    """Raised when a game cannot be started"""
    pass


# Default core per ROM extension
CORE_MAP = {
    # Nintendo
    '.nes': 'nestopia_libretro',
    '.fds': 'nestopia_libretro',
    '.sfc': 'snes9x_libretro',
    '.smc': 'snes9x_libretro',
    '.z64': 'mupen64plus_next_libretro',
    '.n64': 'mupen64plus_next_libretro',
    '.v64': 'mupen64plus_next_libretro',
    '.gb': 'gambatte_libretro',
    '.gbc': 'gambatte_libretro',
    '.gba': 'mgba_libretro',
    '.nds': 'melonds_libretro',
    '.vb': 'beetle_vb_libretro',

    # Sega
    '.md': 'genesis_plus_gx_libretro',
    '.smd': 'genesis_plus_gx_libretro',
    '.gen': 'genesis_plus_gx_libretro',
    '.sms': 'genesis_plus_gx_libretro',
    '.gg': 'genesis_plus_gx_libretro',
    '.32x': 'picodrive_libretro',
    '.msu': 'genesis_plus_gx_libretro',
    '.cue': 'genesis_plus_gx_libretro',  # shared with PS1/Saturn

    # Sony
    '.iso': 'pcsx_rearmed_libretro',
    '.bin': 'pcsx_rearmed_libretro',
    '.chd': 'pcsx_rearmed_libretro',
    '.cso': 'ppsspp_libretro',

    # Atari
    '.a26': 'stella_libretro',
    '.a52': 'a5200_libretro',
    '.a78': 'prosystem_libretro',
    '.lnx': 'handy_libretro',
    '.jag': 'virtualjaguar_libretro',

    # Computers
    '.d64': 'vice_x64sc_libretro',
    '.prg': 'vice_x64sc_libretro',
    '.t64': 'vice_x64sc_libretro',
    '.adf': 'puae_libretro',
    '.uae': 'puae_libretro',

    # Others
    '.pce': 'mednafen_pce_fast_libretro',
    '.sgx': 'mednafen_pce_fast_libretro',
    '.ws': 'mednafen_wswan_libretro',
    '.wsc': 'mednafen_wswan_libretro',
    '.ngp': 'mednafen_ngp_libretro',
    '.ngc': 'mednafen_ngp_libretro',

    # Pico-8
    '.p8': CORE_PICO8,
    '.png': CORE_PICO8,
}

# Platform key (RomM slug) -> preferred cores, best first
PLATFORM_CORES = {
    'nes': ['nestopia_libretro', 'fceumm_libretro', 'mesen_libretro'],
    'fds': ['nestopia_libretro', 'fceumm_libretro'],
    'snes': ['snes9x_libretro', 'bsnes_libretro', 'mesen-s_libretro'],
    'n64': ['mupen64plus_next_libretro', 'parallel_n64_libretro'],
    'gb': ['gambatte_libretro', 'sameboy_libretro', 'tgbdual_libretro'],
    'gbc': ['gambatte_libretro', 'sameboy_libretro', 'tgbdual_libretro'],
    'gba': ['mgba_libretro', 'vba_next_libretro', 'vbam_libretro'],
    'nds': ['melonds_libretro', 'desmume_libretro'],
    'virtualboy': ['beetle_vb_libretro'],
    'genesis-slash-megadrive': ['genesis_plus_gx_libretro', 'picodrive_libretro', 'blastem_libretro'],
    'sms': ['genesis_plus_gx_libretro', 'picodrive_libretro'],
    'gamegear': ['genesis_plus_gx_libretro'],
    'sega32': ['picodrive_libretro'],
    'segacd': ['genesis_plus_gx_libretro', 'picodrive_libretro'],
    'psx': ['pcsx_rearmed_libretro', 'swanstation_libretro', 'mednafen_psx_hw_libretro'],
    'psp': ['ppsspp_libretro'],
    'atari2600': ['stella_libretro'],
    'atari5200': ['a5200_libretro'],
    'atari7800': ['prosystem_libretro'],
    'lynx': ['handy_libretro'],
    'jaguar': ['virtualjaguar_libretro'],
    'c64': ['vice_x64sc_libretro'],
    'amiga': ['puae_libretro'],
    'tg16': ['mednafen_pce_fast_libretro'],
    'wonderswan': ['mednafen_wswan_libretro'],
    'wonderswan-color': ['mednafen_wswan_libretro'],
    'neo-geo-pocket': ['mednafen_ngp_libretro'],
    'neo-geo-pocket-color': ['mednafen_ngp_libretro'],
    'pico': [CORE_PICO8],
    'gamecube': ['dolphin_libretro'],
    'wii': ['dolphin_libretro'],
    '3ds': ['citra_libretro'],
}

# Display-name keywords -> platform key; matched on word boundaries,
# longest first so "game boy advance" wins over "game boy"
PLATFORM_KEYWORDS = {
    'super nintendo entertainment system': 'snes',
    'nintendo entertainment system': 'nes',
    'famicom disk system': 'fds',
    'famicom': 'nes',
    'nes': 'nes',
    'super nintendo': 'snes',
    'super famicom': 'snes',
    'snes': 'snes',
    'nintendo 64': 'n64',
    'n64': 'n64',
    'game boy advance': 'gba',
    'gameboy advance': 'gba',
    'gba': 'gba',
    'game boy color': 'gbc',
    'gameboy color': 'gbc',
    'gbc': 'gbc',
    'game boy': 'gb',
    'gameboy': 'gb',
    'gb': 'gb',
    'nintendo ds': 'nds',
    'nds': 'nds',
    'dsi': 'nds',
    'nintendo 3ds': '3ds',
    '3ds': '3ds',
    'gamecube': 'gamecube',
    'gcn': 'gamecube',
    'ngc': 'gamecube',
    'wii': 'wii',
    'virtual boy': 'virtualboy',
    'genesis': 'genesis-slash-megadrive',
    'mega drive': 'genesis-slash-megadrive',
    'megadrive': 'genesis-slash-megadrive',
    'master system': 'sms',
    'game gear': 'gamegear',
    '32x': 'sega32',
    'sega cd': 'segacd',
    'mega cd': 'segacd',
    'mega-cd': 'segacd',
    'playstation portable': 'psp',
    'psp': 'psp',
    'playstation': 'psx',
    'psx': 'psx',
    'ps1': 'psx',
    'atari 2600': 'atari2600',
    'atari 5200': 'atari5200',
    'atari 7800': 'atari7800',
    'lynx': 'lynx',
    'jaguar': 'jaguar',
    'commodore 64': 'c64',
    'c64': 'c64',
    'amiga': 'amiga',
    'pc engine': 'tg16',
    'turbografx': 'tg16',
    'turbografx-16': 'tg16',
    'wonderswan color': 'wonderswan-color',
    'wonderswan': 'wonderswan',
    'neo geo pocket color': 'neo-geo-pocket-color',
    'neo geo pocket': 'neo-geo-pocket',
    'pico-8': 'pico',
    'pico 8': 'pico',

    # Known, but not playable here
    'playstation 2': '',
    'playstation 3': '',
    'playstation 4': '',
    'playstation 5': '',
    'playstation vita': '',
    'ps2': '',
    'ps3': '',
    'wii u': '',
    'nintendo 64dd': '',
}

_CHEEVOS_TOKEN_RE = re.compile(r'^\s*cheevos_token\s*=\s*.*$', re.IGNORECASE | re.MULTILINE)


def identify_platform(name_or_slug):
    """Map a RomM platform name or slug to a known platform key, or ''"""
    if not name_or_slug:
        return ''
    text = name_or_slug.strip().lower()
    if text in PLATFORM_CORES:
        return text

    normalized = re.sub(r'\s+-\s+|[_\s]+', ' ', text)
    for keyword in sorted(PLATFORM_KEYWORDS, key=len, reverse=True):
        if re.search(r'(?<![\w-])' + re.escape(keyword) + r'(?![\w-])', normalized):
            return PLATFORM_KEYWORDS[keyword]
    return ''


def get_cores_for_platform(name_or_slug):
    return list(PLATFORM_CORES.get(identify_platform(name_or_slug), []))


def core_library_ext(system=None):
    """Dynamic library extension cores use on this OS"""
    system = system or sys.platform
    if system.startswith('win'):
        return '.dll'
    if system == 'darwin':
        return '.dylib'
    return '.so'


def normalize_arch(machine=None):
    machine = (machine or platform.machine()).lower()
    if machine in ('x86_64', 'amd64'):
        return 'amd64'
    if machine in ('arm64', 'aarch64'):
        return 'arm64'
    if machine in ('i386', 'i686', 'x86', '386'):
        return '386'
    return machine


def buildbot_url(core_file, arch, system=None):
    """URL of a nightly core build on the libretro buildbot"""
    system = system or sys.platform
    if system.startswith('win'):
        os_name = 'windows'
    elif system == 'darwin':
        os_name = 'apple/osx'
    elif system.startswith('linux'):
        os_name = 'linux'
    else:
        raise LaunchError(f"unsupported OS for core downloads: {system}")

    if arch == 'amd64':
        arch_name = 'x86_64'
    elif arch == 'arm64':
        arch_name = 'arm64' if system == 'darwin' else 'aarch64'
    elif arch == '386':
        arch_name = 'x86'
    else:
        raise LaunchError(f"unsupported arch for core downloads: {arch}")

    return BUILDBOT_URL.format(os_name=os_name, arch=arch_name, core_file=core_file)


def unzip_core(src, dest):
    """Extract a core archive, refusing entries that would land outside ``dest``"""
    with zipfile.ZipFile(src) as archive:
        for member in archive.infolist():
            target = os.path.join(dest, member.filename)
            if not is_within(dest, target) or os.path.normpath(target) == os.path.normpath(dest):
                raise LaunchError(f"illegal file path: {member.filename}")
            if member.is_dir():
                os.makedirs(target, exist_ok=True)
                continue
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with archive.open(member) as source, open(target, 'wb') as out:
                shutil.copyfileobj(source, out)
            mode = member.external_attr >> 16
            if mode:
                os.chmod(target, mode & 0o777)


def download_core(core_file, cores_dir, arch=None, session=None, on_event=None):
    """Fetch a missing core from the libretro buildbot into ``cores_dir``"""
    emit = on_event or (lambda *_: None)
    emit(EVENT_PLAY_STATUS, f"Downloading missing core: {core_file}...")

    url = buildbot_url(core_file, arch or normalize_arch())
    http = session or requests
    try:
        response = http.get(url, stream=True, timeout=120)
    except requests.RequestException as e:
        raise LaunchError(f"failed to download core: {e}") from e

    with closing_logged(response, "download_core: Failed to close response"):
        if response.status_code != 200:
            raise LaunchError(f"core download failed with status {response.status_code} from {url}")

        os.makedirs(cores_dir, exist_ok=True)
        zip_path = os.path.join(cores_dir, core_file + '.zip')
        try:
            with open(zip_path, 'wb') as out:
                for chunk in response.iter_content(chunk_size=65536):
                    if chunk:
                        out.write(chunk)
        except OSError as e:
            remove_logged(zip_path)
            raise LaunchError(f"failed to save core zip: {e}") from e

    try:
        unzip_core(zip_path, cores_dir)
    except (zipfile.BadZipFile, OSError) as e:
        raise LaunchError(f"failed to extract core: {e}") from e
    finally:
        remove_logged(zip_path)

    logging.info(f"Downloaded core {core_file} into {cores_dir}")
    emit(EVENT_PLAY_STATUS, "Core downloaded successfully!")


def resolve_executable(exe_path, system=None):
    """Turn a configured path into (executable, RetroArch base dir)

    Accepts the binary itself, the folder holding it, or on macOS the
    ``RetroArch.app`` bundle.
    """
    system = system or sys.platform
    if os.path.isdir(exe_path) and not exe_path.endswith('.app'):
        if system == 'darwin':
            candidates = [os.path.join(exe_path, 'RetroArch.app'), os.path.join(exe_path, 'RetroArch')]
        elif system.startswith('win'):
            candidates = [os.path.join(exe_path, 'retroarch.exe')]
        else:
            candidates = [os.path.join(exe_path, 'retroarch')]
        found = next((c for c in candidates if os.path.exists(c)), None)
        if not found:
            raise LaunchError(f"retroarch executable not found in directory: {exe_path}")
        exe_path = found

    base_dir = os.path.dirname(exe_path)
    if system == 'darwin':
        if exe_path.endswith('.app'):
            base_dir = exe_path
            exe_path = os.path.join(exe_path, 'Contents', 'MacOS', 'RetroArch')
        elif '.app/Contents/MacOS' in exe_path:
            base_dir = os.path.dirname(os.path.dirname(os.path.dirname(exe_path)))
    return exe_path, base_dir


def is_flatpak_command(exe_path):
    """True for a ``flatpak run <app>`` command rather than a binary path"""
    return bool(exe_path) and exe_path.split()[:2] == ['flatpak', 'run']


def flatpak_cores_directory():
    return str(Path.home() / '.var' / 'app' / FLATPAK_APP_ID / 'config' / 'retroarch' / 'cores')


def cores_directory(base_dir, system=None):
    system = system or sys.platform
    if system == 'darwin':
        return str(Path.home() / 'Library' / 'Application Support' / 'RetroArch' / 'cores')
    return os.path.join(base_dir, 'cores')


def find_retroarch_executable():
    """Find a RetroArch install: native packages, PATH, then Flatpak"""
    native_paths = [
        '/usr/bin/retroarch',
        '/usr/local/bin/retroarch',
        '/opt/retroarch/bin/retroarch',
        str(Path.home() / '.steam/steam/steamapps/common/RetroArch/retroarch'),
        str(Path.home() / '.local/share/Steam/steamapps/common/RetroArch/retroarch'),
    ]
    for path in native_paths:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            logging.info(f"Selected RetroArch: native - {path}")
            return path

    path_command = shutil.which('retroarch')
    if path_command:
        logging.info(f"Selected RetroArch: path - {path_command}")
        return path_command

    if shutil.which('flatpak'):
        try:
            result = subprocess.run(['flatpak', 'list'], capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logging.debug(f"flatpak list failed: {e}")
        else:
            if 'org.libretro.RetroArch' in result.stdout:
                logging.info("Selected RetroArch: flatpak - org.libretro.RetroArch")
                return FLATPAK_COMMAND
    return None


class RomTarget:
    """What RetroArch should be pointed at for one ROM file"""

    def __init__(self, launch_path, core_name, temp_path=None):
        self.launch_path = launch_path
        self.core_name = core_name
        self.temp_path = temp_path

    def cleanup(self):
        if self.temp_path:
            remove_logged(self.temp_path)


def _preferred_core(ext, preferred):
    """Default core for ``ext``, unless the platform prefers others

    Shared extensions (``.cue``, ``.bin``, ``.iso``) map to one default; a
    PS1 ``.cue`` should still open in a PlayStation core.
    """
    default = CORE_MAP.get(ext)
    if default is None:
        return None
    if preferred and default not in preferred:
        return preferred[0]
    return default


def resolve_rom_target(rom_path, platform_slug='', core_override=None):
    """Work out the launch path and core for ``rom_path``

    Zip archives are launched as ``archive.zip#inner.ext`` using the first
    member with a known extension. Pico-8 ``.png`` carts are exposed under a
    ``.p8`` name so RetroArch does not open them in its image viewer.
    """
    ext = Path(rom_path).suffix.lower()
    preferred = get_cores_for_platform(platform_slug) if platform_slug else []
    launch_path = rom_path
    temp_path = None

    if ext == '.zip':
        try:
            archive = zipfile.ZipFile(rom_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise LaunchError(f"failed to open .zip rom archive: {e}") from e

        with archive:
            member = next((m for m in archive.infolist()
                           if not m.is_dir() and Path(m.filename).suffix.lower() in CORE_MAP), None)
            if member is None:
                raise LaunchError("could not find a recognizable ROM file inside the .zip archive")
            ext = Path(member.filename).suffix.lower()

            if ext == '.png' and CORE_MAP[ext] == CORE_PICO8:
                fd, temp_path = tempfile.mkstemp(prefix='pico8_', suffix='.p8')
                with os.fdopen(fd, 'wb') as out, archive.open(member) as source:
                    shutil.copyfileobj(source, out)
                launch_path = temp_path
                logging.info(f"Extracted Pico-8 .png cart from ZIP to {temp_path}")
            else:
                launch_path = f"{rom_path}#{member.filename}"

    core_name = core_override or _preferred_core(ext, preferred)
    if not core_name:
        raise LaunchError(f"no default core mapping found for extension: {ext}")

    if ext == '.png' and core_name == CORE_PICO8 and temp_path is None:
        link_path = rom_path + '.p8'
        remove_logged(link_path)
        try:
            os.link(rom_path, link_path)
            launch_path = temp_path = link_path
            logging.info(f"Created temporary hardlink {link_path} for Pico-8 .png cart")
        except OSError as e:
            logging.error(f"Failed to create temporary hardlink: {e}. Falling back to original path.")

    return RomTarget(launch_path, core_name, temp_path)


def build_append_config(saves_dir, states_dir, cheevos_user='', cheevos_pass=''):
    """Settings passed with --appendconfig; the user's retroarch.cfg is left alone"""
    content = f'savefile_directory = "{saves_dir}"\nsavestate_directory = "{states_dir}"\n'
    if cheevos_user and cheevos_pass:
        content += (
            'cheevos_enable = "true"\n'
            f'cheevos_username = "{cheevos_user}"\n'
            f'cheevos_password = "{cheevos_pass}"\n'
        )
    content += 'config_save_on_exit = "false"\n'
    return content


def _detect_binary_arch(exe_path):
    """Arch of the RetroArch binary itself (Rosetta builds on Apple Silicon)"""
    try:
        out = subprocess.run(['file', exe_path], capture_output=True, text=True, timeout=5).stdout
    except (OSError, subprocess.SubprocessError):
        return normalize_arch()
    if 'x86_64' in out:
        return 'amd64'
    if 'arm64' in out:
        return 'arm64'
    return normalize_arch()


def _watch_process(process, cleanup_paths, on_event):
    on_event(EVENT_GAME_STARTED, None)
    try:
        output, _ = process.communicate()
        if process.returncode:
            logging.warning(f"RetroArch exited with code {process.returncode}: {(output or '')[-2000:]}")
        else:
            logging.info("RetroArch exited")
            logging.debug(f"RetroArch output: {(output or '')[-2000:]}")
    finally:
        for path in cleanup_paths:
            remove_logged(path)
        on_event(EVENT_GAME_EXITED, None)


def launch(exe_path, rom_path, cheevos_user='', cheevos_pass='', core_override=None,
           platform_slug='', on_event=None, session=None):
    """Start RetroArch for ``rom_path`` without blocking

    Saves and states are redirected next to the ROM. A watcher thread emits
    game-started / game-exited and removes temporary files afterwards.

    Returns:
        The psutil.Popen handle of the emulator process
    """
    emit = on_event or (lambda *_: None)
    flatpak = is_flatpak_command(exe_path)
    if flatpak:
        command = exe_path.split()
        base_dir = ''
        cores_dir = flatpak_cores_directory()
    else:
        exe_path, base_dir = resolve_executable(exe_path)
        command = [exe_path]
        cores_dir = cores_directory(base_dir)

    # Saves live beside the original ROM, even if we launch a temp copy
    rom_base_dir = os.path.dirname(rom_path)
    target = resolve_rom_target(rom_path, platform_slug, core_override)

    core_file = target.core_name + core_library_ext()
    core_path = os.path.join(cores_dir, core_file)
    if not os.path.exists(core_path):
        emit(EVENT_PLAY_STATUS, f"Emulator core {core_file} not found locally. Attempting to download...")
        arch = _detect_binary_arch(exe_path) if sys.platform == 'darwin' else normalize_arch()
        try:
            download_core(core_file, cores_dir, arch, session=session, on_event=emit)
        except LaunchError as e:
            target.cleanup()
            raise LaunchError(f"emulator core not found at {core_path} and auto-download failed: {e}") from e

    saves_dir = os.path.join(rom_base_dir, DIR_SAVES)
    states_dir = os.path.join(rom_base_dir, DIR_STATES)
    makedirs_logged(saves_dir)
    makedirs_logged(states_dir)
    logging.info(f"Launch: Saves dir: {saves_dir}, States dir: {states_dir}")

    cleanup_paths = [target.temp_path] if target.temp_path else []
    append_config_path = None
    try:
        # Flatpak RetroArch has its own /tmp
        fd, append_config_path = tempfile.mkstemp(prefix='retroarch_config_', suffix='.cfg',
                                                  dir=rom_base_dir if flatpak else None)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(build_append_config(saves_dir, states_dir, cheevos_user, cheevos_pass))
        cleanup_paths.append(append_config_path)
    except OSError as e:
        logging.error(f"Launch: Failed to write temporary config: {e}")
        append_config_path = None

    args = command + ['-L', core_path, '-f', '-v']
    if append_config_path:
        args += ['--appendconfig', append_config_path]
    args.append(target.launch_path)
    logging.debug(f"Launching: {' '.join(args)}")

    try:
        process = psutil.Popen(args, cwd=base_dir or None, stdout=subprocess.PIPE,
                               stderr=subprocess.STDOUT, text=True)
    except OSError as e:
        for path in cleanup_paths:
            remove_logged(path)
        raise LaunchError(f"failed to start RetroArch: {e}") from e

    threading.Thread(target=_watch_process, args=(process, cleanup_paths, emit),
                     name='retroarch-watch').start()
    return process


def retroarch_config_paths(exe_path='', system=None):
    """Candidate retroarch.cfg locations, next to the binary first"""
    system = system or sys.platform
    paths = []
    if exe_path and os.path.exists(exe_path):
        base = exe_path if os.path.isdir(exe_path) else os.path.dirname(exe_path)
        paths.append(os.path.join(base, 'retroarch.cfg'))
    home = Path.home()
    if system.startswith('linux'):
        paths.append(str(home / '.config' / 'retroarch' / 'retroarch.cfg'))
        paths.append(str(home / '.var' / 'app' / 'org.libretro.RetroArch' / 'config' / 'retroarch' / 'retroarch.cfg'))
    elif system == 'darwin':
        paths.append(str(home / 'Library' / 'Application Support' / 'RetroArch' / 'config' / 'retroarch.cfg'))
    return paths


def clear_cheevos_token(exe_path='', config_paths=None):
    """Blank ``cheevos_token`` so RetroArch logs in again with new credentials"""
    for path in config_paths if config_paths is not None else retroarch_config_paths(exe_path):
        if not os.path.isfile(path):
            continue
        try:
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            logging.debug(f"Could not read {path}: {e}")
            continue

        new_content = _CHEEVOS_TOKEN_RE.sub('cheevos_token = ""', content)
        if new_content != content:
            try:
                with open(path, 'w', encoding='utf-8') as f:
                    f.write(new_content)
            except OSError as e:
                raise LaunchError(f"failed to write updated retroarch.cfg at {path}: {e}") from e
            logging.info(f"Cleared cheevos_token in {path}")


def is_retroarch_running():
    """Check if a RetroArch process is running"""
    current_pid = os.getpid()
    for proc in psutil.process_iter(['pid', 'name', 'cmdline', 'status']):
        try:
            if proc.info['pid'] == current_pid:
                continue
            if proc.info['status'] in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD):
                continue
            name = (proc.info['name'] or '').lower()
            if name in ('retroarch', 'retroarch.exe'):
                return True
            cmdline = ' '.join(proc.info['cmdline'] or []).lower()
            if 'org.libretro.retroarch' in cmdline:
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return False
