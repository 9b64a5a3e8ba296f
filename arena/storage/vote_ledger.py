"""Vote ledger: bounded vote log plus atomic aggregates.

Redis layout:
    - `votes:all`        list of vote JSON, newest first, trimmed to
                         `VOTE_LOG_LIMIT` entries.
    - `vote:<pair_id>`   latest vote JSON for a pair, 30-day TTL.
    - `side:wins`        hash `{left, right}`; position-bias detector.
    - `provider:total`   hash `{<provider>: votes}`.
    - `provider:wins`    hash `{<provider>:<side>: wins}`.
    - `provider:losses`  hash `{<provider>:<side>: losses}`.

Consistency:
    `record` sends every write in one `MULTI/EXEC` transaction and every
    counter uses `HINCRBY`, so concurrent votes from any number of processes
    never lose an increment.

Total votes:
    `total_votes` is the length of the bounded log. Once more than
    `VOTE_LOG_LIMIT` votes were cast it stops growing, while `side:wins` and
    the provider hashes keep counting every vote ever recorded.
"""

import json
import logging
from datetime import timedelta

import redis

from arena.core.errors import StoreError, ValidationError
from arena.core.models import LEFT, RIGHT, SIDES, ProviderStats, Vote, opposite_side


logger = logging.getLogger(__name__)

VOTE_LOG_KEY = "votes:all"
VOTE_LOG_LIMIT = 10_000
VOTE_KEY_TTL = timedelta(days=30)
SIDE_WINS_KEY = "side:wins"
PROVIDER_TOTAL_KEY = "provider:total"
PROVIDER_WINS_KEY = "provider:wins"
PROVIDER_LOSSES_KEY = "provider:losses"


def _vote_key(pair_id: str) -> str:
    return f"vote:{pair_id}"


class VoteLedger:
    """Records votes and serves aggregate statistics."""

    def __init__(self, client: redis.Redis, log_limit: int = VOTE_LOG_LIMIT):
        self.client = client
        self.log_limit = log_limit

    def record(self, vote: Vote) -> None:
        """Append `vote` and bump every aggregate in one transaction.

        Raises:
            ValidationError: `vote.winner` is not `left` or `right`.
            StoreError: The store rejected the transaction.
        """
        if vote.winner not in SIDES:
            raise ValidationError("winner must be 'left' or 'right'", code="INVALID_WINNER")

        payload = json.dumps(vote.to_dict())
        loser = opposite_side(vote.winner)

        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.set(_vote_key(vote.pair_id), payload, ex=VOTE_KEY_TTL)
            pipe.lpush(VOTE_LOG_KEY, payload)
            pipe.ltrim(VOTE_LOG_KEY, 0, self.log_limit - 1)
            pipe.hincrby(PROVIDER_TOTAL_KEY, vote.provider, 1)
            pipe.hincrby(PROVIDER_WINS_KEY, f"{vote.provider}:{vote.winner}", 1)
            pipe.hincrby(PROVIDER_LOSSES_KEY, f"{vote.provider}:{loser}", 1)
            pipe.hincrby(SIDE_WINS_KEY, vote.winner, 1)
            pipe.execute()
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to record vote for {vote.pair_id}: {exc}") from exc

        logger.info("Recorded vote pair=%s winner=%s provider=%s", vote.pair_id, vote.winner, vote.provider)

    def total_votes(self) -> int:
        try:
            return int(self.client.llen(VOTE_LOG_KEY))
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to get total votes: {exc}") from exc

    def side_win_counts(self) -> dict[str, int]:
        try:
            raw = self.client.hgetall(SIDE_WINS_KEY)
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to get side wins: {exc}") from exc
        return {LEFT: int(raw.get(LEFT, 0)), RIGHT: int(raw.get(RIGHT, 0))}

    def recent_votes(self, limit: int = 50) -> list[Vote]:
        """Newest `limit` votes. Malformed log entries are skipped."""
        if limit <= 0:
            return []
        return self._load_votes(limit - 1)

    def all_votes(self) -> list[Vote]:
        """Every vote still in the bounded log, newest first."""
        return self._load_votes(-1)

    def _load_votes(self, end: int) -> list[Vote]:
        try:
            entries = self.client.lrange(VOTE_LOG_KEY, 0, end)
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to read votes: {exc}") from exc

        votes = []
        for entry in entries:
            try:
                votes.append(Vote.from_dict(json.loads(entry)))
            except (ValueError, KeyError, TypeError):
                logger.debug("Skipping malformed vote entry: %r", entry)
        return votes

    def provider_stats(self) -> dict[str, ProviderStats]:
        """Per-provider wins/losses summed across both sides."""
        try:
            pipe = self.client.pipeline(transaction=False)
            pipe.hgetall(PROVIDER_WINS_KEY)
            pipe.hgetall(PROVIDER_LOSSES_KEY)
            pipe.hgetall(PROVIDER_TOTAL_KEY)
            wins, losses, totals = pipe.execute()
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to get provider stats: {exc}") from exc

        def summed(counts: dict[str, str], provider: str) -> int:
            return sum(
                int(value) for key, value in counts.items()
                if key.rsplit(":", 1)[0] == provider
            )

        stats = {}
        for provider, total_raw in totals.items():
            total = int(total_raw)
            provider_wins = summed(wins, provider)
            stats[provider] = ProviderStats(
                provider=provider,
                wins=provider_wins,
                losses=summed(losses, provider),
                total_votes=total,
                win_rate=provider_wins / total * 100 if total else 0.0,
                left_wins=int(wins.get(f"{provider}:{LEFT}", 0)),
                right_wins=int(wins.get(f"{provider}:{RIGHT}", 0)),
            )
        return stats
