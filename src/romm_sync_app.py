#!/usr/bin/env python3
"""Command line front end for RomM Library Sync."""

import argparse
import logging
import sys

from game_launcher import GameLauncher
from library_manager import LibraryError, LibraryManager
from retroarch_interface import (
    LaunchError, clear_cheevos_token, find_retroarch_executable, is_retroarch_running,
)
from romm_client import RomMAuthError, RomMError
from romm_models import AppConfig
from romm_service import RomMService
from save_sync import SaveSyncError, SaveSyncManager, compare
from settings_manager import ConfigError, SettingsManager
from sync_constants import (
    APP_NAME, APP_VERSION, EVENT_GAME_EXITED, EVENT_GAME_STARTED, EVENT_PLAY_STATUS, LOG_FILE,
)
from timestamp_parser import TimestampParseError

APP_ERRORS = (RomMError, LibraryError, SaveSyncError, LaunchError, ConfigError)


def setup_logging(verbose=False, log_file=None):
    """Log to the app's log file, and to stderr when verbose"""
    log_file = log_file or LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_file),
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    if verbose:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
        logging.getLogger().addHandler(console)


class App:
    """Wires the services together for one CLI invocation"""

    def __init__(self, config_file=None):
        self.settings = SettingsManager(config_file)
        self.romm = RomMService(self.settings)
        self.library = LibraryManager(self.settings, self.romm)
        self.saves = SaveSyncManager(self.library, self.romm)
        self.launcher = GameLauncher(self.settings, self.romm, self.library,
                                     on_event=self.on_event)

    def connect(self):
        self.romm.login()

    @staticmethod
    def on_event(event, data=None):
        if event == EVENT_PLAY_STATUS:
            print(f"🎮 {data}")
        elif event == EVENT_GAME_STARTED:
            print("▶️ RetroArch started")
        elif event == EVENT_GAME_EXITED:
            print("⏹️ RetroArch exited")


def _mask(value):
    return '********' if value else ''


def cmd_config(app, args):
    update = AppConfig(
        romm_host=args.host or '',
        username=args.username or '',
        password=args.password or '',
        library_path=args.library or '',
        retroarch_path=args.retroarch or '',
        retroarch_executable=args.retroarch_executable or '',
        cheevos_username=args.cheevos_username or '',
        cheevos_password=args.cheevos_password or '',
    )

    if any(vars(update).values()):
        message, host_changed = app.settings.merge_and_save(update)
        if message.startswith('Error'):
            print(f"❌ {message}")
            return 1
        print(f"✅ {message}")
        if host_changed:
            print("🔄 RomM host changed, run 'login' to reconnect")
        if update.cheevos_username or update.cheevos_password:
            # RetroArch keeps a token for the old account otherwise
            clear_cheevos_token(app.settings.get_retroarch_executable())

    config = app.settings.get_config()
    print(f"RomM host:        {config.romm_host}")
    print(f"Username:         {config.username}")
    print(f"Password:         {_mask(config.password)}")
    print(f"Library path:     {config.library_path}")
    print(f"RetroArch path:   {config.retroarch_path}")
    print(f"RetroArch binary: {config.retroarch_executable}")
    print(f"Cheevos user:     {config.cheevos_username}")
    print(f"Cheevos password: {_mask(config.cheevos_password)}")
    if not config.retroarch_executable and not config.retroarch_path:
        detected = find_retroarch_executable()
        if detected:
            print(f"💡 Detected RetroArch at {detected}")
    return 0


def cmd_login(app, args):
    app.connect()
    print(f"✅ Connected to {app.settings.get_romm_host()}")
    return 0


def cmd_platforms(app, args):
    app.connect()
    platforms, total = app.romm.get_platforms(args.limit, args.offset)
    for platform in platforms:
        print(f"{platform.id:>6}  {platform.name} ({platform.slug}) - {platform.rom_count} games")
    print(f"📊 {len(platforms)} of {total} supported platforms")
    return 0


def cmd_games(app, args):
    app.connect()
    games, total = app.romm.get_library(args.limit, args.offset, args.platform)
    has_library = bool(app.settings.get_library_path())
    for game in games:
        downloaded = has_library and bool(app.library.find_rom_path(app.library.get_rom_dir(game), game))
        marker = '📁' if downloaded else '  '
        print(f"{marker} {game.id:>6}  {game.title}  [{game.platform_slug}]")
    print(f"📊 {len(games)} of {total} games")
    return 0


def cmd_download(app, args):
    app.connect()

    def report(info):
        print(f"\r⬇️ {info['filename']}: {info['percentage']:5.1f}%", end='', flush=True)

    path = app.library.download_rom(args.rom_id, progress_callback=report)
    print()
    print(f"✅ Download complete: {path}")
    return 0


def cmd_status(app, args):
    app.connect()
    if app.library.get_download_status(args.rom_id):
        print(f"✅ ROM {args.rom_id} is downloaded")
        return 0
    print(f"❌ ROM {args.rom_id} is not downloaded")
    return 1


def cmd_delete(app, args):
    app.connect()
    app.library.delete_rom(args.rom_id)
    print(f"🗑️ Deleted ROM {args.rom_id}")
    return 0


def _print_assets(local_items, server_items):
    server_by_name = {item.file_name: item for item in server_items}
    for item in local_items:
        remote = server_by_name.pop(item.name, None)
        status = 'local only'
        if remote is not None:
            try:
                status = compare(item, remote)
            except TimestampParseError as e:
                status = f'unknown ({e.text!r})'
        print(f"💾 {item.core}/{item.name}  {item.updated_at}  {status}")
    for remote in server_by_name.values():
        print(f"☁️ {remote.emulator}/{remote.file_name}  {remote.updated_at}  server only  ({remote.full_path})")


def cmd_saves(app, args):
    app.connect()
    _print_assets(app.saves.get_saves(args.rom_id), app.romm.get_server_saves(args.rom_id))
    return 0


def cmd_states(app, args):
    app.connect()
    _print_assets(app.saves.get_states(args.rom_id), app.romm.get_server_states(args.rom_id))
    return 0


def cmd_upload_save(app, args):
    app.connect()
    app.saves.upload_save(args.rom_id, args.core, args.filename)
    print(f"✅ Uploaded save {args.filename}")
    return 0


def cmd_upload_state(app, args):
    app.connect()
    app.saves.upload_state(args.rom_id, args.core, args.filename)
    print(f"✅ Uploaded state {args.filename}")
    return 0


def _pull(app, args, server_items, download):
    remote = next((item for item in server_items if item.id == args.asset_id), None)
    if remote is None:
        print(f"❌ No server file with ID {args.asset_id} for ROM {args.rom_id}")
        return 1
    path = download(args.rom_id, remote.full_path, remote.emulator, remote.file_name, remote.updated_at)
    print(f"✅ Downloaded to {path}")
    return 0


def cmd_pull_save(app, args):
    app.connect()
    return _pull(app, args, app.romm.get_server_saves(args.rom_id), app.saves.download_server_save)


def cmd_pull_state(app, args):
    app.connect()
    return _pull(app, args, app.romm.get_server_states(args.rom_id), app.saves.download_server_state)


def cmd_play(app, args):
    if is_retroarch_running():
        print("⚠️ RetroArch is already running")
    app.connect()
    process = app.launcher.play_rom(args.rom_id, core_override=args.core)
    print(f"🚀 Started RetroArch (PID {process.pid}), waiting for it to exit...")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog='romm-sync', description=f'{APP_NAME} {APP_VERSION}')
    parser.add_argument('--config', help='Path to settings.ini')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug output to stderr')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('config', help='Show or update settings')
    p.add_argument('--host')
    p.add_argument('--username')
    p.add_argument('--password')
    p.add_argument('--library', help='ROM library folder')
    p.add_argument('--retroarch', help='RetroArch folder or executable')
    p.add_argument('--retroarch-executable')
    p.add_argument('--cheevos-username')
    p.add_argument('--cheevos-password')
    p.set_defaults(func=cmd_config)

    p = sub.add_parser('login', help='Check the RomM connection')
    p.set_defaults(func=cmd_login)

    p = sub.add_parser('platforms', help='List platforms RetroArch can play')
    p.add_argument('--limit', type=int, default=50)
    p.add_argument('--offset', type=int, default=0)
    p.set_defaults(func=cmd_platforms)

    p = sub.add_parser('games', help='List games')
    p.add_argument('--platform', type=int, default=0)
    p.add_argument('--limit', type=int, default=50)
    p.add_argument('--offset', type=int, default=0)
    p.set_defaults(func=cmd_games)

    for name, func, helptext in (
        ('download', cmd_download, 'Download a ROM into the library'),
        ('status', cmd_status, 'Check whether a ROM is downloaded'),
        ('delete', cmd_delete, 'Delete a downloaded ROM'),
        ('saves', cmd_saves, 'List local and server saves'),
        ('states', cmd_states, 'List local and server states'),
    ):
        p = sub.add_parser(name, help=helptext)
        p.add_argument('rom_id', type=int)
        p.set_defaults(func=func)

    for name, func in (('upload-save', cmd_upload_save), ('upload-state', cmd_upload_state)):
        p = sub.add_parser(name, help=f'{name.replace("-", " ").capitalize()} to RomM')
        p.add_argument('rom_id', type=int)
        p.add_argument('core')
        p.add_argument('filename')
        p.set_defaults(func=func)

    for name, func in (('pull-save', cmd_pull_save), ('pull-state', cmd_pull_state)):
        p = sub.add_parser(name, help='Download a server file by its ID')
        p.add_argument('rom_id', type=int)
        p.add_argument('asset_id', type=int)
        p.set_defaults(func=func)

    p = sub.add_parser('play', help='Launch a downloaded ROM in RetroArch')
    p.add_argument('rom_id', type=int)
    p.add_argument('--core', help='libretro core to use, e.g. snes9x_libretro')
    p.set_defaults(func=cmd_play)

    return parser


def main(argv=None):
    """Main entry point"""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        app = App(args.config)
        return args.func(app, args)
    except RomMAuthError as e:
        logging.error(f"Authentication failed: {e}")
        print(f"❌ Authentication failed: {e}")
        return 2
    except APP_ERRORS as e:
        logging.error(f"{args.command} failed: {e}")
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n⚠️ Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
