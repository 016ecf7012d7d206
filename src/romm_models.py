"""
Data models for RomM Library Sync

Flat records passed between the RomM API, the local library and the UI.
``from_dict`` takes the API's field names and tolerates missing or null
values; ``to_dict`` writes the same names back.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, List


def _text(d: Dict, key: str) -> str:
    value = d.get(key)
    return '' if value is None else str(value)


def _int(d: Dict, key: str) -> int:
    value = d.get(key)
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def _genre_names(raw) -> List[str]:
    names = []
    for genre in raw or []:
        if isinstance(genre, dict):
            genre = genre.get('name')
        if genre:
            names.append(str(genre))
    return names


@dataclass(frozen=True)
class Game:
    """A ROM in the RomM library"""
    id: int
    title: str = ""
    rom_id: int = 0
    cover_url: str = ""
    full_path: str = ""
    summary: str = ""
    genres: List[str] = field(default_factory=list)
    has_saves: bool = False
    file_size: int = 0
    platform_slug: str = ""

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.title,
            'rom_id': self.rom_id,
            'url_cover': self.cover_url,
            'full_path': self.full_path,
            'summary': self.summary,
            'genres': list(self.genres),
            'has_saves': self.has_saves,
            'fs_size_bytes': self.file_size,
            'platform_slug': self.platform_slug,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> 'Game':
        platform_slug = _text(d, 'platform_slug')
        if not platform_slug and isinstance(d.get('platform'), dict):
            platform_slug = _text(d['platform'], 'slug')
        return cls(
            id=_int(d, 'id'),
            title=_text(d, 'name'),
            rom_id=_int(d, 'rom_id'),
            cover_url=_text(d, 'url_cover'),
            full_path=_text(d, 'full_path'),
            summary=_text(d, 'summary'),
            genres=_genre_names(d.get('genres')),
            has_saves=bool(d.get('has_saves', False)),
            file_size=_int(d, 'fs_size_bytes'),
            platform_slug=platform_slug,
        )


@dataclass(frozen=True)
class Platform:
    """A gaming platform known to RomM"""
    id: int
    name: str = ""
    slug: str = ""
    image_url: str = ""
    rom_count: int = 0

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'url_icon': self.image_url,
            'rom_count': self.rom_count,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> 'Platform':
        return cls(
            id=_int(d, 'id'),
            name=_text(d, 'name') or _text(d, 'display_name'),
            slug=_text(d, 'slug'),
            image_url=_text(d, 'url_icon'),
            rom_count=_int(d, 'rom_count'),
        )


@dataclass(frozen=True)
class FileItem:
    """A local save or state file found under a game's folder"""
    name: str
    core: str
    updated_at: str = ""  # RFC 3339

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict) -> 'FileItem':
        return cls(name=_text(d, 'name'), core=_text(d, 'core'), updated_at=_text(d, 'updated_at'))


@dataclass(frozen=True)
class ServerSave:
    """A save file stored on the RomM server"""
    id: int
    file_name: str = ""
    full_path: str = ""
    emulator: str = ""
    updated_at: str = ""
    file_size: int = 0

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'file_name': self.file_name,
            'full_path': self.full_path,
            'emulator': self.emulator,
            'updated_at': self.updated_at,
            'file_size_bytes': self.file_size,
        }

    @classmethod
    def from_dict(cls, d: Dict):
        return cls(
            id=_int(d, 'id'),
            file_name=_text(d, 'file_name'),
            full_path=_text(d, 'full_path'),
            emulator=_text(d, 'emulator'),
            updated_at=_text(d, 'updated_at'),
            file_size=_int(d, 'file_size_bytes'),
        )


@dataclass(frozen=True)
class ServerState(ServerSave):
    """A save state stored on the RomM server"""


@dataclass
class AppConfig:
    """User settings, persisted by SettingsManager"""
    romm_host: str = ""
    username: str = ""
    password: str = ""
    library_path: str = ""
    retroarch_path: str = ""        # RetroArch root folder
    retroarch_executable: str = ""
    cheevos_username: str = ""
    cheevos_password: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict) -> 'AppConfig':
        return cls(**{name: _text(d, name) for name in cls.__dataclass_fields__})
