"""Background pair generation shared across service instances.

Cycle:
    1. Wait a random jitter so instances started together do not race.
    2. Try the `auto-generation` lock; another holder means skip this cycle.
    3. Generate one pair from a built-in prompt and release the lock.

Only one instance generates per cycle; the lock TTL bounds how long a crashed
holder blocks the others. Generation failures are logged and the loop keeps
running.
"""

import logging
import random
import threading
import uuid

from arena import config
from arena.core.engine import ArenaEngine
from arena.core.errors import ArenaError


logger = logging.getLogger(__name__)

LOCK_NAME = "auto-generation"

DEFAULT_PROMPTS = (
    "A lighthouse on a rocky coast during a thunderstorm",
    "A cozy reading nook with a cat sleeping on a pile of books",
    "A futuristic city skyline at sunset with flying trains",
    "A bowl of ramen photographed from above, studio lighting",
    "An astronaut tending a vegetable garden on the moon",
    "A watercolor painting of a fox in a snowy forest",
    "A vintage bicycle leaning against a flower shop in Paris",
    "A dragon made of origami paper perched on a desk lamp",
    "A mountain lake at dawn with mist over the water",
    "A steampunk owl with brass goggles",
)


class AutoGenerator:
    """Runs `run_cycle` on a daemon thread every `interval` seconds."""

    def __init__(
        self,
        engine: ArenaEngine,
        lock,
        holder_id: str | None = None,
        prompts=DEFAULT_PROMPTS,
        interval: float = config.AUTO_GENERATE_INTERVAL_SECONDS,
        jitter_max: float = config.AUTO_GENERATE_JITTER_SECONDS,
        lock_ttl: int = config.GENERATION_LOCK_TTL_SECONDS,
        rng: random.Random | None = None,
    ):
        self.engine = engine
        self.lock = lock
        self.holder_id = holder_id or f"instance-{uuid.uuid4()}"
        self.prompts = list(prompts)
        self.interval = interval
        self.jitter_max = jitter_max
        self.lock_ttl = lock_ttl
        self._rng = rng or random.Random()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_cycle(self, stop_event: threading.Event | None = None) -> bool:
        """Run one cycle.

        Returns:
            True if this instance held the lock and attempted a generation.
        """
        stop_event = stop_event or self._stop

        if self.jitter_max > 0 and stop_event.wait(self._rng.uniform(0, self.jitter_max)):
            return False

        if not self.lock.try_acquire(LOCK_NAME, self.holder_id, self.lock_ttl):
            logger.debug("Another instance is generating, skipping cycle")
            return False

        try:
            prompt = self._rng.choice(self.prompts)
            logger.info("Auto-generating pair for prompt: %s", prompt)
            try:
                _, pair = self.engine.generate_pair(prompt, cancel_event=stop_event)
            except ArenaError as exc:
                logger.warning("Auto-generation failed: %s", exc)
            else:
                if pair is not None:
                    logger.info("Auto-generated pair %s with %s", pair.pair_id, pair.provider)
            return True
        finally:
            self.lock.release(LOCK_NAME, self.holder_id)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_cycle(self._stop)
            except ArenaError:
                logger.exception("Auto-generation cycle failed")
            if self._stop.wait(self.interval):
                break

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="auto-generator", daemon=True)
        self._thread.start()
        logger.info("Auto-generation started (interval=%ss, holder=%s)", self.interval, self.holder_id)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Auto-generation stopped")
