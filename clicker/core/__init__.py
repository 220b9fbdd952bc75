"""
Core infrastructure layer: configuration, logging, database, events,
validation, audit trail and the remote game session client.

Feature modules import from the specific submodule they need; this package
performs no imports of its own to keep start-up ordering explicit.
"""
