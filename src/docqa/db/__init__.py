"""docqa database layer."""

from docqa.db.connection import Database
from docqa.db.migrations import MIGRATIONS, run_migrations
from docqa.db.repository import Repository
from docqa.db.schema import initialize
from docqa.db.vectors import encode_embedding, similarity_from_distance

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "encode_embedding",
    "similarity_from_distance",
]
