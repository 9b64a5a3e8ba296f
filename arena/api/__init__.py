"""Arena API adapter package.

Architectural role:
- Defines the external interaction boundary for HTTP and CLI interfaces.
- Performs transport-level validation and response shaping.
- Delegates generation and voting to `arena.core.engine.ArenaEngine`.
"""
