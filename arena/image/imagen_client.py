"""Google Imagen adapter (Gemini API `predict` endpoint).

One request returns up to four images as base64 in
`predictions[].bytesBase64Encoded`. Predictions filtered by the vendor's
safety system come back without image bytes and are skipped; a response with
no usable image is a failure.
"""

import logging
import threading

from arena.config import IMAGE_PROVIDERS, IMAGEN_MODEL
from arena.core.models import GeneratedImage, GenerationRequest
from arena.image.base import BaseProvider, decode_base64_image


logger = logging.getLogger(__name__)


class ImagenProvider(BaseProvider):
    """Adapter for Imagen models served by generativelanguage.googleapis.com."""

    def __init__(self, api_key, storage, base_url=None, model=IMAGEN_MODEL, **kwargs):
        super().__init__("google-imagen", api_key, "GOOGLE_API_KEY", storage, **kwargs)
        self.base_url = base_url or IMAGE_PROVIDERS["google-imagen"]["url"]
        self.model = model

    def _generate(
        self,
        request: GenerationRequest,
        cancel_event: threading.Event | None,
    ) -> tuple[list[GeneratedImage], dict[str, str]]:
        self._check_cancelled(cancel_event)

        payload = {
            "instances": [{"prompt": request.prompt}],
            "parameters": {"sampleCount": request.image_count},
        }
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }
        data = self._post_json(f"{self.base_url}/models/{self.model}:predict", payload, headers)

        predictions = [p for p in data.get("predictions") or [] if p.get("bytesBase64Encoded")]
        if not predictions:
            raise RuntimeError("no images in Imagen response")

        images = []
        for index, prediction in enumerate(predictions[:request.image_count]):
            image_bytes = decode_base64_image(prediction["bytesBase64Encoded"])
            content_type = prediction.get("mimeType") or "image/png"
            images.append(self.save_image(image_bytes, request.pair_id, index, content_type))

        return images, {"model": self.model, "api_version": "v1beta"}
