"""
SIPEDES Permohonan Workflow Module

Lifecycle engine for citizen document requests (permohonan):
- Request aggregate, documents and append-only timeline
- State machine with atomic, audited transitions
- Lookup/query layer for citizen status checks and officer queues
- Pluggable persistence, blob storage and notification dispatch
"""

__version__ = "1.0.0"
