"""Session event logs."""

from ccx.logs.store import LogStore

__all__ = ["LogStore"]
