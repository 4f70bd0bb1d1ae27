"""REST sync collaborator: transformation helpers, client and event mirroring."""

from .client import ApiError, TrackerApiClient
from .remote import RemoteSync, pull_state

__all__ = ["ApiError", "RemoteSync", "TrackerApiClient", "pull_state"]
