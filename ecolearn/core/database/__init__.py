"""Database connection module for EcoLearn."""

from ecolearn.core.database.cassandra import (
    CassandraConnection,
    init_cassandra,
)


__all__ = [
    "CassandraConnection",
    "init_cassandra",
]
