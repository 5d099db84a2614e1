"""
Storage Package.

This package holds the ORM models persisted by the engine.

Modules:
- models/: Table definitions
"""
