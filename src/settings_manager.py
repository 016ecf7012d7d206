#!/usr/bin/env python3
"""Persistent user settings for RomM Library Sync."""

import base64
import configparser
import getpass
import hashlib
import logging
import os
import socket
import threading
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from romm_models import AppConfig
from sync_constants import SETTINGS_FILE


class ConfigError(Exception):
    """Raised when the settings file cannot be read or written"""
    pass


# AppConfig field -> (INI section, key)
FIELD_MAP = {
    'romm_host': ('RomM', 'url'),
    'username': ('RomM', 'username'),
    'password': ('RomM', 'password'),
    'library_path': ('Download', 'library_path'),
    'retroarch_path': ('RetroArch', 'path'),
    'retroarch_executable': ('RetroArch', 'executable'),
    'cheevos_username': ('RetroAchievements', 'username'),
    'cheevos_password': ('RetroAchievements', 'password'),
}

SENSITIVE_KEYS = {
    ('RomM', 'username'),
    ('RomM', 'password'),
    ('RetroAchievements', 'username'),
    ('RetroAchievements', 'password'),
}

EXECUTABLE_SUFFIXES = ('.exe', '.app')


def looks_like_executable(path):
    """True for paths naming the RetroArch binary rather than its folder."""
    return Path(path).suffix.lower() in EXECUTABLE_SUFFIXES or path.endswith('retroarch')


class SettingsManager:
    """Handle saving and loading application settings"""

    def __init__(self, config_file=None):
        self.config_file = Path(config_file) if config_file else SETTINGS_FILE
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

        self._setup_encryption()

        # Passwords may contain '%'
        self.config = configparser.ConfigParser(interpolation=None)
        self.load_settings()

    def _setup_encryption(self):
        """Derive the Fernet key from username + hostname for basic protection"""
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = os.environ.get('USER', 'user')
        key_material = f"{user}-{socket.gethostname()}".encode()
        key = hashlib.sha256(key_material).digest()
        self.cipher = Fernet(base64.urlsafe_b64encode(key))

    def _encrypt(self, value):
        if not value:
            return value
        return self.cipher.encrypt(value.encode()).decode()

    def _decrypt(self, value):
        if not value:
            return value
        try:
            return self.cipher.decrypt(value.encode()).decode()
        except InvalidToken:
            # Hand-edited plain text, or a file written on another machine
            logging.debug("Stored credential is not encrypted with this machine's key, using as-is")
            return value

    def _defaults(self):
        return {
            'RomM': {'url': '', 'username': '', 'password': ''},
            'Download': {'library_path': ''},
            'RetroArch': {'path': '', 'executable': ''},
            'RetroAchievements': {'username': '', 'password': ''},
        }

    def load_settings(self):
        """Load settings from file, creating defaults when it does not exist"""
        with self._lock:
            if not self.config_file.exists():
                logging.info(f"Config file not found. Creating default at: {self.config_file}")
                self.config.read_dict(self._defaults())
                self.save_settings()
                return

            try:
                self.config.read(self.config_file, encoding='utf-8')
            except configparser.Error as e:
                raise ConfigError(f"failed to parse config file {self.config_file}: {e}") from e
            self._migrate_settings()

    def _migrate_settings(self):
        """Add sections/keys missing from files written by older versions"""
        modified = False
        for section, values in self._defaults().items():
            if section not in self.config:
                self.config[section] = {}
                modified = True
            for key, default_value in values.items():
                if key not in self.config[section]:
                    self.config[section][key] = default_value
                    modified = True

        if modified:
            self.save_settings()
            logging.info("Settings migrated to latest version")

    def save_settings(self):
        """Save settings to file"""
        with self._lock:
            try:
                with open(self.config_file, 'w', encoding='utf-8') as f:
                    self.config.write(f)
            except OSError as e:
                raise ConfigError(f"failed to write config file {self.config_file}: {e}") from e

    def _snapshot(self):
        return {section: dict(self.config[section]) for section in self.config.sections()}

    def _commit(self, snapshot):
        """Write the config; on failure put the in-memory values back"""
        try:
            self.save_settings()
        except ConfigError:
            for section in self.config.sections():
                self.config.remove_section(section)
            self.config.read_dict(snapshot)
            raise

    def get(self, section, key, fallback=''):
        """Get a setting value with decryption for sensitive data"""
        with self._lock:
            value = self.config.get(section, key, fallback=fallback)
        if (section, key) in SENSITIVE_KEYS and value:
            value = self._decrypt(value)
        return value

    def set(self, section, key, value):
        """Set a setting value with encryption for sensitive data"""
        value = '' if value is None else str(value)
        if (section, key) in SENSITIVE_KEYS and value:
            value = self._encrypt(value)
        with self._lock:
            snapshot = self._snapshot()
            if section not in self.config:
                self.config[section] = {}
            self.config[section][key] = value
            self._commit(snapshot)

    def get_config(self):
        """Return a copy of the current configuration"""
        with self._lock:
            return AppConfig(**{
                field_name: self.get(section, key)
                for field_name, (section, key) in FIELD_MAP.items()
            })

    def save(self, app_config):
        """Replace the stored configuration with ``app_config``"""
        with self._lock:
            snapshot = self._snapshot()
            for field_name, (section, key) in FIELD_MAP.items():
                value = getattr(app_config, field_name) or ''
                if (section, key) in SENSITIVE_KEYS and value:
                    value = self._encrypt(value)
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value
            self._commit(snapshot)

    def merge_and_save(self, update):
        """Merge non-empty fields of ``update`` into the stored config.

        Returns:
            (message, host_changed) tuple
        """
        with self._lock:
            current = self.get_config()
            old_host = current.romm_host

            for field_name in ('romm_host', 'username', 'password', 'library_path'):
                value = getattr(update, field_name)
                if value:
                    setattr(current, field_name, value)

            # The executable wins; its folder becomes the RetroArch path
            if update.retroarch_executable:
                current.retroarch_executable = update.retroarch_executable
                current.retroarch_path = os.path.dirname(update.retroarch_executable)
            elif update.retroarch_path:
                if looks_like_executable(update.retroarch_path):
                    current.retroarch_executable = update.retroarch_path
                    current.retroarch_path = os.path.dirname(update.retroarch_path)
                else:
                    current.retroarch_path = update.retroarch_path

            for field_name in ('cheevos_username', 'cheevos_password'):
                value = getattr(update, field_name)
                if value:
                    setattr(current, field_name, value)

            try:
                self.save(current)
            except ConfigError as e:
                logging.error(f"Error saving config: {e}")
                return f"Error saving config: {e}", False

        return "Configuration saved successfully!", current.romm_host != old_host

    def set_library_path(self, path):
        self.set('Download', 'library_path', path)

    def set_retroarch_executable(self, path):
        with self._lock:
            self.set('RetroArch', 'executable', path)
            self.set('RetroArch', 'path', os.path.dirname(path))

    # Accessors used by the services

    def get_romm_host(self):
        return self.get('RomM', 'url')

    def get_credentials(self):
        return self.get('RomM', 'username'), self.get('RomM', 'password')

    def get_library_path(self):
        return self.get('Download', 'library_path')

    def get_retroarch_executable(self):
        """Configured executable, else the RetroArch folder (resolved at launch)"""
        return self.get('RetroArch', 'executable') or self.get('RetroArch', 'path')

    def get_cheevos_credentials(self):
        return self.get('RetroAchievements', 'username'), self.get('RetroAchievements', 'password')
