"""
cronlock - cluster-wide at-most-once cron scheduling backed by a shared lock table.

Every node of a fleet runs the same schedule; a ShedLock-style row per named
lock decides which node actually executes each fire.

Packages:
- cronlock.core: errors, logging, settings, durations, ORM
- cronlock.scheduling: lock store, lock manager, coordinator, backends, service
- cronlock.cli: ``cronlock`` operator commands
"""

__version__ = "0.1.0"
