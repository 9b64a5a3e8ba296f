"""Core orchestration package.

Architectural role:
    Sits between the API entrypoints and the vendor adapters / Redis stores.

Composition:
    - `models`: shared records (status, requests, pairs, votes).
    - `errors`: exception taxonomy mapped to HTTP responses by `arena.api`.
    - `selection`: provider ordering strategies.
    - `rwlock`: reader/writer lock guarding the provider status table.
    - `orchestrator`: select -> attempt -> fallback state machine.
    - `engine`: request-level flows wiring orchestrator and stores together.
    - `autogen`: lock-guarded background pair generation.
"""
