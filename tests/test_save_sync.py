import os

import pytest

from fakes import FakeResponse, FakeRomM, FakeSettings
from library_manager import LibraryManager
from romm_models import FileItem, Game, ServerSave
from save_sync import (
    PathTraversalError, SaveSyncError, SaveSyncManager, compare, validate_asset_path,
)
from sync_constants import LOCAL_NEWER, REMOTE_NEWER, SAME
from timestamp_parser import TimestampParseError, parse_timestamp

GAME = Game(id=12, title='Chrono Trigger', full_path='roms/snes/Chrono Trigger.sfc', platform_slug='snes')


@pytest.fixture
def romm():
    return FakeRomM([GAME])


@pytest.fixture
def sync(tmp_path, romm):
    library = LibraryManager(FakeSettings(library_path=str(tmp_path)), romm)
    return SaveSyncManager(library, romm)


def _rom_dir(sync):
    return sync.library.get_rom_dir(GAME)


def _write(path, data=b'save'):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)
    return path


def test_listing_without_folder_is_empty(sync):
    assert sync.get_saves(12) == []
    assert sync.get_states(12) == []


def test_get_saves_lists_per_core_files(sync):
    saves = os.path.join(_rom_dir(sync), 'saves')
    path = _write(os.path.join(saves, 'snes9x', 'Chrono Trigger.srm'))
    _write(os.path.join(saves, 'snes9x', '.DS_Store'))
    _write(os.path.join(saves, 'stray.srm'))
    os.utime(path, (1698400800, 1698400800))

    items = sync.get_saves(12)

    assert items == [FileItem(name='Chrono Trigger.srm', core='snes9x', updated_at='2023-10-27T10:00:00Z')]


def test_get_saves_walks_dolphin_memory_cards(sync):
    saves = os.path.join(_rom_dir(sync), 'saves')
    _write(os.path.join(saves, 'dolphin-emu', 'User', 'GC', 'USA', 'Card A', 'GALE01.gci'))
    _write(os.path.join(saves, 'dolphin-emu', 'User', 'GC', 'JPN', 'Card A', 'GALJ01.gci'))

    items = sync.get_saves(12)

    assert [(i.name, i.core.replace(os.sep, '/')) for i in items] == [
        ('GALE01.gci', 'dolphin-emu/User/GC/USA/Card A'),
        ('GALJ01.gci', 'dolphin-emu/User/GC/JPN/Card A'),
    ]


def test_upload_save_sends_content_and_touches_file(sync, romm):
    path = _write(os.path.join(_rom_dir(sync), 'saves', 'snes9x', 'ct.srm'), b'battery')
    os.utime(path, (0, 0))

    sync.upload_save(12, 'snes9x', 'ct.srm')

    assert romm.uploads == [('saves', 12, 'snes9x', 'ct.srm', b'battery')]
    assert os.path.getmtime(path) > 0


def test_upload_state_uses_state_endpoint(sync, romm):
    _write(os.path.join(_rom_dir(sync), 'states', 'snes9x', 'ct.state1'), b'state')
    sync.upload_state(12, 'snes9x', 'ct.state1')
    assert romm.uploads[0][0] == 'states'


def test_upload_rejects_traversal(sync, romm):
    _write(os.path.join(_rom_dir(sync), 'secret.txt'))
    with pytest.raises(PathTraversalError):
        sync.upload_save(12, '..', 'secret.txt')
    with pytest.raises(PathTraversalError):
        sync.upload_save(12, 'snes9x', '../../secret.txt')
    assert romm.uploads == []


def test_upload_missing_file(sync):
    with pytest.raises(SaveSyncError):
        sync.upload_save(12, 'snes9x', 'nope.srm')


def test_download_server_save_sets_mtime(sync, romm):
    response = FakeResponse(content=b'server-save')
    romm.saves['saves/ct.srm'] = response

    path = sync.download_server_save(12, 'saves/ct.srm', 'snes9x', 'ct.srm', '2023-10-27T12:00:00+02:00')

    assert path == os.path.join(_rom_dir(sync), 'saves', 'snes9x', 'ct.srm')
    with open(path, 'rb') as f:
        assert f.read() == b'server-save'
    assert os.stat(path).st_mtime == 1698400800
    assert response.closed


def test_download_uses_server_filename_when_none_given(sync, romm):
    romm.saves['states/x/ct.state'] = FakeResponse(content=b's')
    path = sync.download_server_state(12, 'states/x/ct.state', 'snes9x')
    assert os.path.basename(path) == 'ct.state'
    assert romm.asset_downloads == [('states', 'states/x/ct.state')]


def test_download_keeps_mtime_for_bad_timestamp(sync, romm):
    romm.saves['s'] = FakeResponse(content=b's')
    path = sync.download_server_save(12, 's', 'snes9x', 'ct.srm', 'yesterday')
    assert os.path.exists(path)
    assert os.stat(path).st_mtime != 0


def test_download_remaps_dolphin_card(sync, romm):
    romm.saves['saves/gc.gci'] = FakeResponse(content=b'gc')
    path = sync.download_server_save(12, 'saves/gc.gci', 'Card A', 'GALE01.gci')
    expected = os.path.join(_rom_dir(sync), 'saves', 'dolphin-emu', 'User', 'GC', 'USA', 'Card A', 'GALE01.gci')
    assert path == expected


def test_download_strips_directories_from_names(sync, romm):
    romm.saves['s'] = FakeResponse(content=b's')
    path = sync.download_server_save(12, 's', '../../evil', '../../../x.srm')
    assert path == os.path.join(_rom_dir(sync), 'saves', 'evil', 'x.srm')


def test_delete_save(sync):
    path = _write(os.path.join(_rom_dir(sync), 'saves', 'snes9x', 'ct.srm'))
    sync.delete_save(12, 'snes9x', 'ct.srm')
    assert not os.path.exists(path)
    sync.delete_save(12, 'snes9x', 'ct.srm')


def test_delete_state_rejects_traversal(sync):
    with pytest.raises(PathTraversalError):
        sync.delete_state(12, '../..', 'x')


@pytest.mark.parametrize('core, filename', [
    ('..', 'a.srm'),
    ('snes9x', '.'),
    ('', 'a.srm'),
    ('snes9x', ''),
])
def test_validate_asset_path_rejects(core, filename):
    with pytest.raises(PathTraversalError):
        validate_asset_path(core, filename)


def test_validate_asset_path_keeps_basenames():
    assert validate_asset_path('cores/snes9x/', 'dir\\a.srm') == ('snes9x', 'a.srm')


def test_compare():
    local = FileItem(name='a.srm', core='snes9x', updated_at='2023-10-27T10:00:01Z')
    remote = ServerSave(id=1, updated_at='2023-10-27T12:00:00+02:00')

    assert compare(local, remote) == LOCAL_NEWER
    assert compare(remote, local) == REMOTE_NEWER
    assert compare('2023-10-27 10:00:00', remote) == SAME
    assert compare(local, remote, tolerance=5) == SAME


def test_compare_sub_microsecond():
    assert compare('2023-10-27T10:00:00.000000002Z', '2023-10-27T10:00:00.000000001Z') == LOCAL_NEWER


def test_compare_unparseable():
    with pytest.raises(TimestampParseError):
        compare(FileItem(name='a', core='c', updated_at=''), '2023-10-27T10:00:00Z')


def test_set_file_time_keeps_nanoseconds(sync, romm):
    romm.saves['s'] = FakeResponse(content=b's')
    path = sync.download_server_save(12, 's', 'snes9x', 'a.srm', '2023-10-27T10:00:00.5Z')
    expected = parse_timestamp('2023-10-27T10:00:00.5Z')
    assert os.stat(path).st_mtime_ns == expected.seconds * 1_000_000_000 + expected.nanosecond
