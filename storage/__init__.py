from storage.base import AggregateWrite, LeagueStore
from storage.factory import create_store
from storage.memory import InMemoryLeagueStore

__all__ = ["AggregateWrite", "LeagueStore", "InMemoryLeagueStore", "create_store"]
