"""Off-chain metadata stores."""

from evenntz_coordinator.storage.http import HttpMetadataStore
from evenntz_coordinator.storage.sqlite import SQLiteMetadataStore

__all__ = ["HttpMetadataStore", "SQLiteMetadataStore"]
