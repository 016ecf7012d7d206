#!/usr/bin/env python3
"""HTTP client for the RomM API."""

import logging
import os
import re
from urllib.parse import quote, urljoin, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from romm_models import Game, Platform, ServerSave, ServerState
from sync_constants import APP_NAME, APP_VERSION

DEFAULT_TIMEOUT = 60
TOKEN_SCOPE = 'roms.read platforms.read assets.read assets.write'

# Keys RomM has used for the total in paginated responses, in priority order
TOTAL_KEYS = ('total_count', 'total', 'count', 'total_results')

_DISPOSITION_RE = re.compile(r'filename="?([^";]+)"?')


class RomMError(Exception):
    """Base class for RomM client errors"""
    pass


class RomMAuthError(RomMError):
    """Raised when a call needs a token we do not have, or login is refused"""
    pass


class RomMAPIError(RomMError):
    """Raised for non-success HTTP responses"""

    def __init__(self, what, status_code, body=''):
        self.status_code = status_code
        self.body = body
        message = f"{what} failed with status {status_code}"
        if body:
            message += f": {body}"
        super().__init__(message)


def filename_from_disposition(header, fallback):
    """Pick the download name out of a Content-Disposition header"""
    if header and 'filename=' in header:
        match = _DISPOSITION_RE.search(header)
        if match:
            return match.group(1).strip()
    return fallback


class RomMClient:
    """Client for interacting with RomM API"""

    def __init__(self, base_url, session=None, timeout=DEFAULT_TIMEOUT):
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout
        self.access_token = None
        self.token_type = 'bearer'
        self.session = session if session is not None else self._build_session()

    @staticmethod
    def _build_session():
        session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=4,
            pool_maxsize=4,
            max_retries=Retry(total=2, backoff_factor=0.5, allowed_methods=frozenset(['GET', 'HEAD'])),
        )
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        session.headers.update({
            'Accept-Encoding': 'gzip, deflate',
            'Accept': 'application/json',
            'User-Agent': f'{APP_NAME}/{APP_VERSION}',
        })
        return session

    @property
    def authenticated(self):
        return bool(self.access_token)

    def _url(self, path):
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return urljoin(self.base_url + '/', path.lstrip('/'))

    def _require_token(self):
        if not self.access_token:
            raise RomMAuthError("not authenticated")

    def _auth_headers(self):
        return {'Authorization': f'Bearer {self.access_token}'}

    def _request(self, method, path, what, expected=(200,), auth=True, headers=None, **kwargs):
        """Send a request and raise unless the status is in ``expected``."""
        if auth:
            self._require_token()
        request_headers = dict(headers or {})
        if auth:
            request_headers.update(self._auth_headers())

        url = self._url(path)
        logging.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, headers=request_headers,
                                            timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RomMError(f"failed to perform {what} request: {e}") from e

        if response.status_code not in expected:
            body = response.text[:500] if not kwargs.get('stream') else ''
            response.close()
            raise RomMAPIError(what, response.status_code, body)
        return response

    def _json(self, response, what):
        try:
            return response.json()
        except ValueError as e:
            raise RomMError(f"failed to decode {what} response: {e}") from e

    def login(self, username, password):
        """Authenticate with the OAuth2 password grant and keep the access token"""
        token_data = {
            'username': username,
            'password': password,
            'grant_type': 'password',
            'scope': TOKEN_SCOPE,
        }
        try:
            response = self._request('POST', '/api/token', 'login', auth=False, data=token_data)
        except RomMAPIError as e:
            raise RomMAuthError(str(e)) from e

        token_info = self._json(response, 'login')
        access_token = token_info.get('access_token') if isinstance(token_info, dict) else None
        if not access_token:
            raise RomMAuthError("login response did not contain an access token")

        self.access_token = access_token
        self.token_type = token_info.get('token_type', 'bearer')
        logging.info(f"Authenticated with RomM at {self.base_url}")
        return self.access_token

    def _parse_page(self, raw, model, what):
        """Accept a bare array or a paginated ``{"items": [...]}`` object"""
        if isinstance(raw, list):
            items, total = raw, len(raw)
        elif isinstance(raw, dict) and isinstance(raw.get('items'), list):
            items = raw['items']
            total = next((raw[key] for key in TOTAL_KEYS if raw.get(key)), 0) or len(items)
        else:
            raise RomMError(f"unknown {what} response format: {str(raw)[:200]}")
        return [model.from_dict(item) for item in items], int(total)

    def get_library(self, limit, offset, platform_id=0):
        """Fetch one page of games, optionally for a single platform

        Returns:
            (games, total) tuple
        """
        params = {'limit': limit, 'offset': offset}
        if platform_id and platform_id > 0:
            params['platform_ids'] = platform_id
        response = self._request('GET', '/api/roms', 'library fetch', params=params)
        return self._parse_page(self._json(response, 'library'), Game, 'library')

    def get_platforms(self, limit, offset):
        """Fetch one page of platforms

        Returns:
            (platforms, total) tuple
        """
        params = {'limit': limit, 'offset': offset}
        response = self._request('GET', '/api/platforms', 'platforms fetch', params=params)
        return self._parse_page(self._json(response, 'platforms'), Platform, 'platforms')

    def get_rom(self, rom_id):
        response = self._request('GET', f'/api/roms/{rom_id}', 'ROM fetch')
        data = self._json(response, 'ROM')
        if not isinstance(data, dict):
            raise RomMError(f"unexpected ROM response for {rom_id}")
        return Game.from_dict(data)

    def should_send_token(self, target_url):
        """Only hand the token to RomM itself: relative URLs or same scheme and host"""
        if not (target_url.startswith('http://') or target_url.startswith('https://')):
            return True
        target = urlparse(target_url)
        base = urlparse(self.base_url)
        return target.scheme == base.scheme and target.netloc == base.netloc

    def download_cover(self, cover_url):
        """Fetch cover art bytes from a full or RomM-relative URL"""
        self._require_token()
        target_url = self._url(cover_url)
        response = self._request('GET', target_url, 'cover fetch',
                                 auth=self.should_send_token(target_url))
        return response.content

    def download_file(self, game):
        """Start streaming a ROM file

        Returns:
            (response, filename) tuple; the caller closes the response
        """
        filename = os.path.basename(game.full_path.replace('\\', '/'))
        path = f'/api/roms/{game.id}/content/{quote(filename)}'
        response = self._request('GET', path, 'download', stream=True)
        filename = filename_from_disposition(response.headers.get('Content-Disposition'), filename)
        return response, filename

    def _fetch_assets(self, endpoint, rom_id, model):
        response = self._request('GET', f'/api/{endpoint}', f'{endpoint} fetch',
                                 params={'rom_id': rom_id})
        if not response.content:
            return []
        data = self._json(response, endpoint)
        if isinstance(data, dict):
            data = data.get('items', [])
        if not isinstance(data, list):
            raise RomMError(f"failed to decode {endpoint} response: expected a list")
        return [model.from_dict(item) for item in data]

    def get_saves(self, rom_id):
        return self._fetch_assets('saves', rom_id, ServerSave)

    def get_states(self, rom_id):
        return self._fetch_assets('states', rom_id, ServerState)

    def _upload_asset(self, endpoint, field_name, rom_id, emulator, filename, content):
        params = {'rom_id': rom_id, 'emulator': emulator}
        files = {field_name: (filename, content, 'application/octet-stream')}
        self._request('POST', f'/api/{endpoint}', 'upload', expected=(200, 201),
                      headers={'Accept': 'application/json'}, params=params, files=files)
        logging.info(f"Uploaded {filename} to ROM {rom_id} as {endpoint}")

    def upload_save(self, rom_id, emulator, filename, content):
        self._upload_asset('saves', 'saveFile', rom_id, emulator, filename, content)

    def upload_state(self, rom_id, emulator, filename, content):
        self._upload_asset('states', 'stateFile', rom_id, emulator, filename, content)

    def _download_asset(self, file_path, fallback_filename):
        path = '/api/raw/assets/' + quote(file_path.lstrip('/'))
        response = self._request('GET', path, 'download', stream=True)
        filename = filename_from_disposition(response.headers.get('Content-Disposition'),
                                             fallback_filename)
        return response, filename

    def download_save(self, file_path):
        return self._download_asset(file_path, 'unknown.sav')

    def download_state(self, file_path):
        return self._download_asset(file_path, 'unknown.state')
