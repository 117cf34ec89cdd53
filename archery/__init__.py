"""
Archery Scoring & Rating Engine - Core Package

This package contains the core modules for:
- Target scoring and round aggregation (archery.scoring)
- Archer ratings and leaderboards (archery.rating)
- Repository abstraction and CSV snapshots (archery.storage)
- Shared configuration and utilities
"""

__version__ = "1.0.0"
