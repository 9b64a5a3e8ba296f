"""Leonardo AI adapter (async job API).

Processing flow:
    1. Submit a generation job (`POST /generations`).
    2. Poll `GET /generations/<id>` until `COMPLETE` or `FAILED`.
    3. Download every generated image URL and store the bytes.

Polling budget:
    `LEONARDO_POLL_ATTEMPTS` polls, `LEONARDO_POLL_INTERVAL` seconds apart
    (24 x 5 s = two minutes), then `GenerationTimeout`. The wait between polls
    is `cancel_event.wait`, so cancellation interrupts it immediately with
    `GenerationCancelled`.

Quota:
    `refresh_quota` reads `GET /me`; API subscription tokens are the quota
    that generation consumes.
"""

import logging
import threading
from datetime import datetime

from arena.config import (
    IMAGE_PROVIDERS,
    LEONARDO_MODEL_ID,
    LEONARDO_POLL_ATTEMPTS,
    LEONARDO_POLL_INTERVAL,
)
from arena.core.errors import GenerationCancelled, GenerationTimeout
from arena.core.models import GeneratedImage, GenerationRequest, ProviderQuota
from arena.image.base import BaseProvider


logger = logging.getLogger(__name__)

IMAGE_SIZE = 1024
GUIDANCE_SCALE = 7
INFERENCE_STEPS = 15


class LeonardoProvider(BaseProvider):
    """Adapter for Leonardo AI's REST v1 API."""

    def __init__(
        self,
        api_key,
        storage,
        base_url=None,
        model_id=LEONARDO_MODEL_ID,
        poll_attempts=LEONARDO_POLL_ATTEMPTS,
        poll_interval=LEONARDO_POLL_INTERVAL,
        **kwargs,
    ):
        super().__init__("leonardo-ai", api_key, "LEONARDO_API_KEY", storage, **kwargs)
        self.base_url = base_url or IMAGE_PROVIDERS["leonardo-ai"]["url"]
        self.model_id = model_id
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _generate(
        self,
        request: GenerationRequest,
        cancel_event: threading.Event | None,
    ) -> tuple[list[GeneratedImage], dict[str, str]]:
        self._check_cancelled(cancel_event)
        generation_id = self.start_generation(request.prompt, request.image_count)
        images = self.poll_for_completion(generation_id, request.pair_id, cancel_event)
        return images, {
            "model_id": self.model_id,
            "generation_id": generation_id,
            "api_version": "v1",
        }

    def start_generation(self, prompt: str, count: int) -> str:
        payload = {
            "height": IMAGE_SIZE,
            "width": IMAGE_SIZE,
            "modelId": self.model_id,
            "prompt": prompt,
            "num_images": count,
            "guidance_scale": GUIDANCE_SCALE,
            "num_inference_steps": INFERENCE_STEPS,
        }
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        data = self._post_json(f"{self.base_url}/generations", payload, headers)

        generation_id = (data.get("sdGenerationJob") or {}).get("generationId")
        if not generation_id:
            raise RuntimeError("Leonardo AI did not return a generation id.")
        return generation_id

    def poll_for_completion(
        self,
        generation_id: str,
        pair_id: str,
        cancel_event: threading.Event | None = None,
    ) -> list[GeneratedImage]:
        """Poll the job until it finishes, then store its images.

        Raises:
            GenerationCancelled: `cancel_event` was set before or during a wait.
            GenerationTimeout: The job did not finish within the poll budget.
            RuntimeError: The job failed or returned no images.
        """
        waiter = cancel_event or threading.Event()
        url = f"{self.base_url}/generations/{generation_id}"

        for attempt in range(self.poll_attempts):
            self._check_cancelled(cancel_event)

            data = self._get_json(url, self._auth_headers())
            generation = data.get("generations_by_pk") or {}
            status = generation.get("status")

            if status == "COMPLETE":
                generated = generation.get("generated_images") or []
                if not generated:
                    raise RuntimeError("Leonardo AI finished but no images returned.")
                images = []
                for index, image in enumerate(generated):
                    self._check_cancelled(cancel_event)
                    image_bytes = self._download(image["url"])
                    images.append(self.save_image(image_bytes, pair_id, index))
                return images

            if status == "FAILED":
                raise RuntimeError("generation failed")

            logger.debug(
                "[leonardo-ai] Job %s status=%s (poll %d/%d)",
                generation_id, status, attempt + 1, self.poll_attempts,
            )
            if waiter.wait(self.poll_interval):
                raise GenerationCancelled(f"{self.name} generation cancelled")

        raise GenerationTimeout(f"generation timed out after {self.poll_attempts} attempts")

    def refresh_quota(self, cancel_event: threading.Event | None = None) -> ProviderQuota | None:
        self._check_cancelled(cancel_event)
        logger.info("[leonardo-ai] Refreshing quota information")

        data = self._get_json(f"{self.base_url}/me", self._auth_headers())
        details = data.get("user_details") or []
        if not details:
            raise RuntimeError("no user details in response")
        detail = details[0]

        renewal_at = None
        renewal_raw = detail.get("apiPlanTokenRenewalDate")
        if renewal_raw:
            try:
                renewal_at = datetime.fromisoformat(renewal_raw.replace("Z", "+00:00"))
            except ValueError:
                logger.warning("[leonardo-ai] Unparseable renewal date: %r", renewal_raw)

        api_tokens = int(detail.get("apiSubscriptionTokens") or 0)
        paid_tokens = int(detail.get("apiPaidTokens") or 0)

        # Remaining counts the subscription allowance only; total includes paid tokens.
        quota = ProviderQuota(
            remaining=api_tokens,
            total=api_tokens + paid_tokens,
            renewal_at=renewal_at,
            supported=True,
        )
        logger.info("[leonardo-ai] Quota updated - API tokens: %d", api_tokens)
        return quota
