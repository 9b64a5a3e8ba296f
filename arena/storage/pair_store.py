"""Pair store: generated pairs, unseen sampling and winners replay.

Redis layout:
    - `pair:<id>`         pair JSON, no expiry (pairs feed the permanent
                          leaderboard history).
    - `pairs:index`       set of every stored pair id, sampled at random.
    - `viewed:<session>`  set of pair ids already served to a session; the
                          TTL is pushed back `VIEWED_TTL` on every add.

Sampling cost:
    `get_random_unseen` loads the whole index (`SMEMBERS`) per call. That is
    fine for thousands of pairs and the known limit beyond that.
"""

import json
import logging
import random
from datetime import timedelta

import redis

from arena.core.errors import AllPairsViewed, NoPairsYet, PairNotFound, StoreError, ValidationError
from arena.core.models import SIDES, ImagePair
from arena.storage.vote_ledger import VoteLedger


logger = logging.getLogger(__name__)

PAIR_INDEX_KEY = "pairs:index"
VIEWED_TTL = timedelta(hours=24)


def _pair_key(pair_id: str) -> str:
    return f"pair:{pair_id}"


def _viewed_key(session_id: str) -> str:
    return f"viewed:{session_id}"


class PairStore:
    """Durable pair records plus random unseen retrieval.

    Args:
        client: Redis client created with `decode_responses=True`.
        ledger: Vote ledger replayed by `get_winning_pairs`.
        rng: Random source for sampling (tests pass a seeded one).
    """

    def __init__(self, client: redis.Redis, ledger: VoteLedger | None = None, rng: random.Random | None = None):
        self.client = client
        self.ledger = ledger
        self._rng = rng or random.Random()

    def store(self, pair: ImagePair) -> None:
        """Persist `pair`; storing the same id twice leaves one index entry.

        Raises:
            StoreError: The write failed. Callers decide whether to swallow it.
        """
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.set(_pair_key(pair.pair_id), json.dumps(pair.to_dict()))
            pipe.sadd(PAIR_INDEX_KEY, pair.pair_id)
            pipe.execute()
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to store pair {pair.pair_id}: {exc}") from exc
        logger.info("Stored pair %s from %s", pair.pair_id, pair.provider)

    def get_by_id(self, pair_id: str) -> ImagePair:
        try:
            raw = self.client.get(_pair_key(pair_id))
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to get pair {pair_id}: {exc}") from exc
        if raw is None:
            raise PairNotFound(pair_id)
        try:
            return ImagePair.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"failed to decode pair {pair_id}: {exc}") from exc

    def count(self) -> int:
        try:
            return int(self.client.scard(PAIR_INDEX_KEY))
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to count pairs: {exc}") from exc

    def get_random_unseen(self, excluded_ids=(), session_id: str | None = None) -> ImagePair:
        """Pick a random pair the caller has not excluded or already seen.

        Args:
            excluded_ids: Pair ids the client asks to skip.
            session_id: When given, the session's viewed set is excluded too
                and the returned pair is added to it.

        Raises:
            NoPairsYet: Nothing has been stored yet.
            AllPairsViewed: Pairs exist but every one is excluded or viewed.
        """
        try:
            all_ids = self.client.smembers(PAIR_INDEX_KEY)
            viewed = self.client.smembers(_viewed_key(session_id)) if session_id else set()
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to get pairs index: {exc}") from exc

        if not all_ids:
            raise NoPairsYet()

        candidates = sorted(set(all_ids) - set(excluded_ids) - set(viewed))
        if not candidates:
            raise AllPairsViewed()

        pair_id = self._rng.choice(candidates)
        pair = self.get_by_id(pair_id)

        if session_id:
            self.mark_viewed(session_id, pair_id)
        return pair

    def mark_viewed(self, session_id: str, pair_id: str) -> None:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.sadd(_viewed_key(session_id), pair_id)
            pipe.expire(_viewed_key(session_id), VIEWED_TTL)
            pipe.execute()
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to mark pair {pair_id} viewed: {exc}") from exc

    def get_winning_pairs(self, side: str) -> list[tuple[ImagePair, int]]:
        """Pairs whose `side` image won at least once, most votes first.

        Replays the vote log and joins against stored pairs; votes for pairs
        that are no longer stored are ignored. Ties keep first-seen order.
        """
        if side not in SIDES:
            raise ValidationError("invalid side parameter: must be 'left' or 'right'", code="INVALID_SIDE")
        if self.ledger is None:
            raise StoreError("no vote ledger attached to pair store")

        counts: dict[str, int] = {}
        for vote in self.ledger.all_votes():
            if vote.winner == side:
                counts[vote.pair_id] = counts.get(vote.pair_id, 0) + 1

        winners = []
        for pair_id, vote_count in counts.items():
            try:
                winners.append((self.get_by_id(pair_id), vote_count))
            except PairNotFound:
                continue

        winners.sort(key=lambda item: item[1], reverse=True)
        return winners
