"""Provider set construction used at process start.

Role in pipeline:
    - Resolves vendor credentials through `arena.config.load_key`.
    - Instantiates every adapter, configured or not. Unconfigured adapters are
      still registered so `/status` can report why they are unavailable.
"""

from arena.config import IMAGE_PROVIDERS, load_key
from arena.image.base import BaseProvider
from arena.image.freepik_client import FreepikProvider
from arena.image.imagen_client import ImagenProvider
from arena.image.leonardo_client import LeonardoProvider
from arena.storage.image_storage import ImageStorage


PROVIDER_CLASSES = {
    "freepik": FreepikProvider,
    "leonardo-ai": LeonardoProvider,
    "google-imagen": ImagenProvider,
}


def build_providers(storage: ImageStorage) -> list[BaseProvider]:
    """Instantiate all known adapters with credentials from the environment."""
    providers = []
    for name, provider_cls in PROVIDER_CLASSES.items():
        api_key = load_key(IMAGE_PROVIDERS[name]["key_file"])
        providers.append(provider_cls(api_key, storage))
    return providers
