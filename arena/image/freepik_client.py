"""Freepik text-to-image adapter.

Processing flow:
    1. POST `{prompt, num_images, aspect_ratio}` to `/v1/ai/text-to-image`.
    2. Decode each `data[].base64` entry (data-URL prefixes are stripped).
    3. Store at most `image_count` images.

The endpoint is synchronous; there is no job polling and no quota endpoint.
"""

import logging
import threading

from arena.config import IMAGE_PROVIDERS
from arena.core.models import GeneratedImage, GenerationRequest
from arena.image.base import BaseProvider, decode_base64_image


logger = logging.getLogger(__name__)

ASPECT_RATIO = "square_1_1"


class FreepikProvider(BaseProvider):
    """Adapter for Freepik's Classic Fast model."""

    def __init__(self, api_key, storage, base_url=None, **kwargs):
        super().__init__("freepik", api_key, "FREEPIK_API_KEY", storage, **kwargs)
        self.base_url = base_url or IMAGE_PROVIDERS["freepik"]["url"]

    def _generate(
        self,
        request: GenerationRequest,
        cancel_event: threading.Event | None,
    ) -> tuple[list[GeneratedImage], dict[str, str]]:
        self._check_cancelled(cancel_event)

        payload = {
            "prompt": request.prompt,
            "num_images": request.image_count,
            "aspect_ratio": ASPECT_RATIO,
        }
        headers = {
            "Content-Type": "application/json",
            "x-freepik-api-key": self.api_key,
        }
        data = self._post_json(f"{self.base_url}/v1/ai/text-to-image", payload, headers)

        entries = data.get("data") or []
        if not entries:
            raise RuntimeError("no images returned from Freepik API")

        images = []
        for index, entry in enumerate(entries[:request.image_count]):
            self._check_cancelled(cancel_event)
            try:
                image_bytes = decode_base64_image(entry.get("base64", ""))
            except ValueError as exc:
                raise RuntimeError(f"image {index + 1}: {exc}") from exc
            images.append(self.save_image(image_bytes, request.pair_id, index))

        logger.info("[freepik] Stored %d images for pair %s", len(images), request.pair_id)
        return images, {
            "model": "classic-fast",
            "aspect_ratio": ASPECT_RATIO,
            "api_version": "v1",
        }
