from .store import StoreError, TrackerStore, attach_store

__all__ = ["StoreError", "TrackerStore", "attach_store"]
