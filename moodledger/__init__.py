"""
MoodLedger - Source Package

Ledger and reconciliation core for a personal expense and mood tracker.

DESIGN PRINCIPLES:
1. The in-memory ledger is authoritative during a session
2. Invariant violations are rejected before any state changes
3. Remote failures never lose local data
4. Every mutation is auditable
5. Storage backends are swappable
"""

__version__ = "1.0.0"
__author__ = "MoodLedger Team"
