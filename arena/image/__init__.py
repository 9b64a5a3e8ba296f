"""Vendor adapter package.

Scope:
    One adapter per text-to-image vendor, all sharing `base.BaseProvider` for
    status bookkeeping, failure classification and image persistence.

Modules:
    - `base`: `ImageProvider` protocol, `BaseProvider`, `classify_failure`.
    - `freepik_client`: synchronous base64 API.
    - `leonardo_client`: async job API with status polling and quota lookup.
    - `imagen_client`: Google Imagen `predict` API.
    - `service`: builds the configured provider set.

Non-goals:
    - No prompt rewriting or safety filtering.
    - No retries inside an adapter; fallback is the orchestrator's job.
"""
