"""
PostgreSQL persistence for members, vote history and the proposal cache.

All methods are synchronous psycopg2 calls; async callers run them with
``asyncio.to_thread``. A recorded vote is immutable: vote rows are
insert-only and a second insert for the same member and proposal is a no-op.
"""

import time
from typing import Any, Dict, List, Optional

from src.data_models.relay_schemas import LifecycleState, Proposal
from src.services.connection_pool import DatabaseConnectionPool, get_connection_pool
from src.utils.logger import logger

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        telegram_id TEXT PRIMARY KEY,
        wallet_address TEXT NOT NULL,
        join_date BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS proposal_cache (
        proposal_id TEXT PRIMARY KEY,
        title TEXT NOT NULL DEFAULT '',
        description TEXT NOT NULL DEFAULT '',
        proposer TEXT NOT NULL DEFAULT '',
        state TEXT NOT NULL DEFAULT 'Unknown',
        start_block BIGINT NOT NULL DEFAULT 0,
        end_block BIGINT NOT NULL DEFAULT 0,
        for_votes TEXT NOT NULL DEFAULT '0',
        against_votes TEXT NOT NULL DEFAULT '0',
        abstain_votes TEXT NOT NULL DEFAULT '0',
        last_updated BIGINT NOT NULL,
        is_executed BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_votes (
        telegram_id TEXT NOT NULL,
        proposal_id TEXT NOT NULL,
        vote_type SMALLINT NOT NULL,
        vote_timestamp BIGINT NOT NULL,
        tx_hash TEXT,
        PRIMARY KEY (telegram_id, proposal_id)
    )
    """,
)

_PROPOSAL_COLUMNS = (
    "proposal_id", "title", "description", "proposer", "state", "start_block", "end_block",
    "for_votes", "against_votes", "abstain_votes", "last_updated", "is_executed",
)


def _rows_to_dicts(cur) -> List[Dict[str, Any]]:
    columns = [desc[0] for desc in cur.description]
    return [dict(zip(columns, row)) for row in cur.fetchall()]


class GovernanceStore:

    def __init__(self, pool: Optional[DatabaseConnectionPool] = None):
        self._pool = pool

    @property
    def pool(self) -> DatabaseConnectionPool:
        if self._pool is None:
            self._pool = get_connection_pool()
        return self._pool

    def ensure_schema(self) -> None:
        with self.pool.connection() as conn, conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
        logger.info("GovernanceStore: schema ready")

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------
    def add_user(self, telegram_id, wallet_address: str) -> None:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO users (telegram_id, wallet_address, join_date)
                VALUES (%s, %s, %s)
                ON CONFLICT (telegram_id) DO UPDATE SET wallet_address = EXCLUDED.wallet_address
                """,
                (str(telegram_id), wallet_address, int(time.time())),
            )

    def get_user(self, telegram_id) -> Optional[Dict[str, Any]]:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT telegram_id, wallet_address, join_date FROM users WHERE telegram_id = %s",
                (str(telegram_id),),
            )
            rows = _rows_to_dicts(cur)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------
    def track_user_vote(self, telegram_id, proposal_id, vote_type: int, tx_hash: Optional[str]) -> bool:
        """Record a vote. Returns False when one was already recorded for this pair."""
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_votes (telegram_id, proposal_id, vote_type, vote_timestamp, tx_hash)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (telegram_id, proposal_id) DO NOTHING
                """,
                (str(telegram_id), str(proposal_id), int(vote_type), int(time.time()), tx_hash),
            )
            inserted = cur.rowcount == 1
        if not inserted:
            logger.info("GovernanceStore: vote for %s on %s already recorded", telegram_id, proposal_id)
        return inserted

    def has_user_voted(self, telegram_id, proposal_id) -> bool:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM user_votes WHERE telegram_id = %s AND proposal_id = %s",
                (str(telegram_id), str(proposal_id)),
            )
            return cur.fetchone() is not None

    def get_user_votes(self, telegram_id) -> List[Dict[str, Any]]:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT proposal_id, vote_type, vote_timestamp, tx_hash
                FROM user_votes WHERE telegram_id = %s
                ORDER BY vote_timestamp DESC
                """,
                (str(telegram_id),),
            )
            return _rows_to_dicts(cur)

    # ------------------------------------------------------------------
    # Proposal cache
    # ------------------------------------------------------------------
    def update_proposal_cache(self, proposal: Proposal) -> None:
        values = (
            proposal.proposal_id,
            proposal.title or f"Proposal {proposal.short_id}",
            proposal.description,
            proposal.proposer,
            proposal.state.value,
            proposal.start_block,
            proposal.end_block,
            str(proposal.votes.for_votes),
            str(proposal.votes.against_votes),
            str(proposal.votes.abstain_votes),
            int(time.time()),
            proposal.state == LifecycleState.EXECUTED,
        )
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in _PROPOSAL_COLUMNS[1:])
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                f"INSERT INTO proposal_cache ({', '.join(_PROPOSAL_COLUMNS)}) "
                f"VALUES ({', '.join(['%s'] * len(_PROPOSAL_COLUMNS))}) "
                f"ON CONFLICT (proposal_id) DO UPDATE SET {updates}",
                values,
            )

    def get_cached_state(self, proposal_id) -> Optional[str]:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT state FROM proposal_cache WHERE proposal_id = %s", (str(proposal_id),))
            row = cur.fetchone()
        return row[0] if row else None

    def get_active_proposals_from_cache(self) -> List[Dict[str, Any]]:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                f"SELECT {', '.join(_PROPOSAL_COLUMNS)} FROM proposal_cache WHERE state = %s ORDER BY end_block",
                (LifecycleState.ACTIVE.value,),
            )
            return _rows_to_dicts(cur)
