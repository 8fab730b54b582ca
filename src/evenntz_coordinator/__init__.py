"""evenntz_coordinator - cross-store event publication and ticket lifecycle coordinator."""

__version__ = "0.1.0"
