"""Library domain - song model, catalog providers and play statistics."""

from .catalog import CatalogProvider, InMemoryCatalog, SqliteCatalog, insert_songs
from .models import Song
from .plays import PlayRecorder

__all__ = [
    "Song",
    "CatalogProvider",
    "InMemoryCatalog",
    "SqliteCatalog",
    "insert_songs",
    "PlayRecorder",
]
