"""Content-addressed media uploads."""

from evenntz_coordinator.ipfs.uploader import KuboMediaUploader

__all__ = ["KuboMediaUploader"]
