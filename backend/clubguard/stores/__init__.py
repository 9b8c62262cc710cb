from clubguard.stores.base import AttemptRecord, AttemptStore
from clubguard.stores.memory import InMemoryAttemptStore

__all__ = ["AttemptRecord", "AttemptStore", "InMemoryAttemptStore"]
