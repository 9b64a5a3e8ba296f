"""Persistence package.

Modules:
    - `redis_client`: connection factory for Redis/Valkey.
    - `pair_store`: generated pairs, random unseen sampling, winners replay.
    - `vote_ledger`: vote log and atomic aggregates.
    - `generation_lock`: cross-instance lock for background generation.
    - `image_storage`: object storage for generated image bytes.

Every cross-process invariant relies on server-side atomic commands
(`SET NX EX`, `HINCRBY`, `MULTI/EXEC`); nothing here does client-side
read-modify-write on shared counters.
"""
