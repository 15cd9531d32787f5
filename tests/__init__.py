"""
CMS Replica Test Suite.

This package contains:
- unit/: Unit tests (no network, in-memory backends and temp dirs)
- integration/: Sync engine and replica composition against the in-memory remote
- factories.py: Builders for sync items
"""
