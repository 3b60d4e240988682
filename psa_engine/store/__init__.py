"""Record store interface and implementations."""

from psa_engine.store.json_store import JsonFileRecordStore
from psa_engine.store.record_store import InMemoryRecordStore, RecordStore

__all__ = ["InMemoryRecordStore", "JsonFileRecordStore", "RecordStore"]
