"""
Storage backends for the threshold lab.

Modules:
    memory: InMemoryStore for tests and file-based backtests
    postgres_client: PostgresClient backed by asyncpg
    bootstrap: Seed farms and static bands from configuration

PostgresClient is imported lazily by callers so the in-memory store works
without a database driver.
"""

from farmwatch.storage.bootstrap import farm_from_config, seed_from_config
from farmwatch.storage.memory import InMemoryStore

__all__: list[str] = [
    "InMemoryStore",
    "farm_from_config",
    "seed_from_config",
]
