import pytest
import requests

from fakes import FakeResponse, FakeSession
from romm_client import (
    TOKEN_SCOPE, RomMAPIError, RomMAuthError, RomMClient, RomMError, filename_from_disposition,
)
from romm_models import Game, ServerSave


def _client(*responses, token='tok'):
    client = RomMClient('http://romm.local/', session=FakeSession(*responses))
    client.access_token = token
    return client


def test_login_uses_password_grant():
    session = FakeSession(FakeResponse(json_data={'access_token': 'abc', 'token_type': 'bearer'}))
    client = RomMClient('http://romm.local', session=session)

    assert client.login('user', 'secret') == 'abc'
    assert client.authenticated

    call = session.calls[0]
    assert call['method'] == 'POST'
    assert call['url'] == 'http://romm.local/api/token'
    assert call['data'] == {'username': 'user', 'password': 'secret',
                            'grant_type': 'password', 'scope': TOKEN_SCOPE}
    assert 'Authorization' not in call['headers']


def test_login_rejected():
    client = RomMClient('http://romm.local', session=FakeSession(FakeResponse(401, {'detail': 'bad'})))
    with pytest.raises(RomMAuthError):
        client.login('user', 'wrong')
    assert not client.authenticated


def test_login_without_token_in_response():
    client = RomMClient('http://romm.local', session=FakeSession(FakeResponse(json_data={})))
    with pytest.raises(RomMAuthError):
        client.login('user', 'secret')


def test_calls_need_a_token():
    client = _client(token=None)
    with pytest.raises(RomMAuthError):
        client.get_library(10, 0)
    assert client.session.calls == []


def test_get_library_bare_list():
    client = _client(FakeResponse(json_data=[{'id': 1, 'name': 'A'}, {'id': 2, 'name': 'B'}]))
    games, total = client.get_library(10, 0)
    assert [g.title for g in games] == ['A', 'B']
    assert total == 2

    call = client.session.calls[0]
    assert call['url'] == 'http://romm.local/api/roms'
    assert call['params'] == {'limit': 10, 'offset': 0}
    assert call['headers']['Authorization'] == 'Bearer tok'


def test_get_library_paginated_total_priority():
    payload = {'items': [{'id': 1}], 'total_count': 0, 'total': 0, 'count': 7, 'total_results': 9}
    client = _client(FakeResponse(json_data=payload))
    games, total = client.get_library(1, 0, platform_id=4)
    assert games == [Game(id=1)]
    assert total == 7
    assert client.session.calls[0]['params']['platform_ids'] == 4


def test_get_library_paginated_falls_back_to_item_count():
    client = _client(FakeResponse(json_data={'items': [{'id': 1}, {'id': 2}]}))
    assert client.get_library(10, 0)[1] == 2


def test_unknown_page_shape():
    client = _client(FakeResponse(json_data={'results': []}))
    with pytest.raises(RomMError):
        client.get_platforms(10, 0)


def test_api_error_carries_status_and_body():
    response = FakeResponse(500, content=b'boom')
    client = _client(response)
    with pytest.raises(RomMAPIError) as exc_info:
        client.get_rom(3)
    assert exc_info.value.status_code == 500
    assert exc_info.value.body == 'boom'
    assert response.closed


def test_transport_errors_are_wrapped():
    client = _client(requests.ConnectionError('refused'))
    with pytest.raises(RomMError) as exc_info:
        client.get_rom(3)
    assert not isinstance(exc_info.value, RomMAPIError)


def test_should_send_token():
    client = _client()
    assert client.should_send_token('/assets/covers/1.png')
    assert client.should_send_token('http://romm.local/assets/x.png')
    assert not client.should_send_token('https://romm.local/assets/x.png')
    assert not client.should_send_token('http://cdn.example.com/x.png')


def test_download_cover_keeps_token_on_host():
    client = _client(FakeResponse(content=b'img'), FakeResponse(content=b'ext'))

    assert client.download_cover('/assets/covers/1.png') == b'img'
    assert client.download_cover('http://cdn.example.com/1.png') == b'ext'

    own, foreign = client.session.calls
    assert own['url'] == 'http://romm.local/assets/covers/1.png'
    assert own['headers']['Authorization'] == 'Bearer tok'
    assert 'Authorization' not in foreign['headers']


def test_download_file_quotes_name_and_reads_disposition():
    response = FakeResponse(content=b'rom', headers={'Content-Disposition': 'attachment; filename="Real Name.zip"'})
    client = _client(response)
    game = Game(id=5, full_path='roms/snes/Super Mario (USA).sfc')

    got, filename = client.download_file(game)

    assert got is response
    assert filename == 'Real Name.zip'
    call = client.session.calls[0]
    assert call['url'] == 'http://romm.local/api/roms/5/content/Super%20Mario%20%28USA%29.sfc'
    assert call['stream'] is True


def test_get_saves():
    payload = [{'id': 1, 'file_name': 'a.srm', 'emulator': 'snes9x', 'updated_at': '2023-10-27T10:00:00Z'}]
    client = _client(FakeResponse(json_data=payload), FakeResponse(content=b''))

    saves = client.get_saves(9)
    assert saves == [ServerSave.from_dict(payload[0])]
    assert client.session.calls[0]['params'] == {'rom_id': 9}
    assert client.get_states(9) == []


def test_upload_save_accepts_created():
    client = _client(FakeResponse(201, json_data={'id': 1}))
    client.upload_save(9, 'snes9x', 'a.srm', b'data')

    call = client.session.calls[0]
    assert call['method'] == 'POST'
    assert call['url'] == 'http://romm.local/api/saves'
    assert call['params'] == {'rom_id': 9, 'emulator': 'snes9x'}
    assert call['files'] == {'saveFile': ('a.srm', b'data', 'application/octet-stream')}


def test_upload_state_field_name():
    client = _client(FakeResponse(200, json_data={}))
    client.upload_state(9, 'snes9x', 'a.state', b'data')
    assert 'stateFile' in client.session.calls[0]['files']


def test_download_save_fallback_name():
    client = _client(FakeResponse(content=b'x'), FakeResponse(content=b'y'))

    _, save_name = client.download_save('/saves/snes/a b.srm')
    _, state_name = client.download_state('states/x')

    assert save_name == 'unknown.sav'
    assert state_name == 'unknown.state'
    assert client.session.calls[0]['url'] == 'http://romm.local/api/raw/assets/saves/snes/a%20b.srm'


def test_filename_from_disposition():
    assert filename_from_disposition('attachment; filename=game.sfc', 'x') == 'game.sfc'
    assert filename_from_disposition('inline', 'x') == 'x'
    assert filename_from_disposition(None, 'x') == 'x'
