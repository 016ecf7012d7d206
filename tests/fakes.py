"""Hand-written stand-ins for requests sessions and the service layer."""

import json


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=None, headers=None):
        self.status_code = status_code
        self._json = json_data
        if content is None:
            content = json.dumps(json_data).encode() if json_data is not None else b''
        self.content = content
        self.headers = headers or {}
        self.closed = False

    @property
    def text(self):
        return self.content.decode('utf-8', errors='replace')

    def json(self):
        if self._json is None:
            return json.loads(self.content)
        return self._json

    def iter_content(self, chunk_size=65536):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """Returns queued responses (or raises queued exceptions) in order"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append({'method': method, 'url': url, 'headers': headers or {},
                           'timeout': timeout, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, stream=False, timeout=None):
        return self.request('GET', url, stream=stream, timeout=timeout)


class FakeSettings:
    def __init__(self, host='http://romm.local', username='user', password='pass',
                 library_path='', retroarch_executable='', cheevos=('', '')):
        self.host = host
        self.username = username
        self.password = password
        self.library_path = library_path
        self.retroarch_executable = retroarch_executable
        self.cheevos = cheevos

    def get_romm_host(self):
        return self.host

    def get_credentials(self):
        return self.username, self.password

    def get_library_path(self):
        return self.library_path

    def get_retroarch_executable(self):
        return self.retroarch_executable

    def set_retroarch_executable(self, path):
        self.retroarch_executable = path

    def get_cheevos_credentials(self):
        return self.cheevos


class FakeRomM:
    """The slice of RomMService the library, save sync and launcher use"""

    def __init__(self, games=(), download=None, saves=None):
        self.games = {game.id: game for game in games}
        self.download = download
        self.saves = saves or {}
        self.uploads = []
        self.asset_downloads = []

    def get_rom(self, rom_id):
        return self.games[rom_id]

    def download_file(self, game):
        return self.download, game.full_path.rsplit('/', 1)[-1]

    def upload_save(self, rom_id, emulator, filename, content):
        self.uploads.append(('saves', rom_id, emulator, filename, content))

    def upload_state(self, rom_id, emulator, filename, content):
        self.uploads.append(('states', rom_id, emulator, filename, content))

    def download_save(self, file_path):
        self.asset_downloads.append(('saves', file_path))
        return self.saves[file_path], file_path.rsplit('/', 1)[-1]

    def download_state(self, file_path):
        self.asset_downloads.append(('states', file_path))
        return self.saves[file_path], file_path.rsplit('/', 1)[-1]
