"""
History Cleanup - scheduling core for purging historical execution records.

Decides when the recurring cleanup job may run (a daily batch window),
what it removes (a bounded, priority-ordered batch of record ids) and
deletes historical batch aggregates together with their dependents.
"""

try:
    from importlib.metadata import version

    __version__ = version("history-cleanup")
except Exception:
    __version__ = "0.0.0"  # Fallback for development
