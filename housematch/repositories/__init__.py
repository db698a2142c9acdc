from housematch.repositories.base import BaseRepository
from housematch.repositories.match import MatchRepository
from housematch.repositories.preferences import PreferencesRepository

__all__ = [
    "BaseRepository",
    "MatchRepository",
    "PreferencesRepository",
]
