"""Image Arena: side-by-side comparison of text-to-image providers.

Package layout:
    - `config`: environment-driven endpoints, credentials and tuning knobs.
    - `core`: data records, error taxonomy, provider orchestration, engine.
    - `image`: vendor adapters sharing one failure-classification policy.
    - `storage`: Redis-backed pair store, vote ledger, generation lock and the
      object-storage client for generated images.
    - `api`: FastAPI surface and the interactive terminal client.
"""

__version__ = "0.4.0"
