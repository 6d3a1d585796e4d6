"""
Posterior Storage
=================
Durable per-team latent posteriors behind a narrow contract.

    get(entity_id)                        -> LatentPosterior | None
    put(entity_id, posterior)             -> None
    touch_observation_timestamp(entity_id) -> None

Implementations:
    InMemoryPosteriorStore   dict-backed, for tests and offline replays
    PostgresPosteriorStore   psycopg2, table ``team_latent_posteriors``

Schema (PostgreSQL):
    CREATE TABLE team_latent_posteriors (
        entity_id          TEXT PRIMARY KEY,
        mean               JSONB NOT NULL,
        std_dev            JSONB NOT NULL,
        observation_count  INTEGER NOT NULL DEFAULT 0,
        last_updated       TIMESTAMP NOT NULL,
        last_observed_at   TIMESTAMP
    );
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Protocol, runtime_checkable

import psycopg2
from psycopg2.extras import Json

from ncaab.config.database import get_team_db_config
from ncaab.core.exceptions import StorageConnectionError, StorageError
from ncaab.core.schemas import LatentPosterior

logger = logging.getLogger(__name__)

POSTERIOR_TABLE = "team_latent_posteriors"


@runtime_checkable
class PosteriorStore(Protocol):
    """Per-entity posterior persistence."""

    def get(self, entity_id: str) -> Optional[LatentPosterior]:
        ...

    def put(self, entity_id: str, posterior: LatentPosterior) -> None:
        ...

    def touch_observation_timestamp(self, entity_id: str) -> None:
        ...


class InMemoryPosteriorStore:
    """Thread-safe dict-backed store."""

    def __init__(self, posteriors: Optional[Dict[str, LatentPosterior]] = None):
        self._posteriors: Dict[str, LatentPosterior] = dict(posteriors or {})
        self._observed_at: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def get(self, entity_id: str) -> Optional[LatentPosterior]:
        with self._lock:
            return self._posteriors.get(entity_id)

    def put(self, entity_id: str, posterior: LatentPosterior) -> None:
        with self._lock:
            self._posteriors[entity_id] = posterior

    def touch_observation_timestamp(self, entity_id: str) -> None:
        with self._lock:
            self._observed_at[entity_id] = datetime.now()

    def last_observed_at(self, entity_id: str) -> Optional[datetime]:
        with self._lock:
            return self._observed_at.get(entity_id)

    def entity_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._posteriors)

    def __len__(self) -> int:
        with self._lock:
            return len(self._posteriors)

    def __contains__(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._posteriors

    def __iter__(self) -> Iterator[str]:
        return iter(self.entity_ids())


class PostgresPosteriorStore:
    """
    PostgreSQL-backed store using psycopg2.

    Each call runs in its own transaction on a shared connection; the
    connection is opened lazily from ``get_team_db_config()`` unless one is
    injected.
    """

    def __init__(
        self,
        db_config: Optional[Dict[str, Any]] = None,
        connection=None,
        table: str = POSTERIOR_TABLE,
    ):
        self.db_config = db_config or get_team_db_config()
        self.table = table
        self._conn = connection

    @property
    def conn(self):
        if self._conn is None:
            try:
                self._conn = psycopg2.connect(**self.db_config)
            except psycopg2.OperationalError as e:
                raise StorageConnectionError(
                    self.db_config.get("database", "unknown"),
                    self.db_config.get("host"),
                    self.db_config.get("port"),
                ) from e
            logger.info(
                "Connected to posterior store",
                extra={
                    "database": self.db_config.get("database"),
                    "host": self.db_config.get("host"),
                },
            )
        return self._conn

    def ensure_schema(self) -> None:
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                entity_id          TEXT PRIMARY KEY,
                mean               JSONB NOT NULL,
                std_dev            JSONB NOT NULL,
                observation_count  INTEGER NOT NULL DEFAULT 0,
                last_updated       TIMESTAMP NOT NULL,
                last_observed_at   TIMESTAMP
            )
            """
        )

    def get(self, entity_id: str) -> Optional[LatentPosterior]:
        query = f"""
            SELECT mean, std_dev, observation_count, last_updated
            FROM {self.table}
            WHERE entity_id = %s
        """
        try:
            with self.conn.cursor() as cursor:
                cursor.execute(query, (entity_id,))
                row = cursor.fetchone()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise StorageError(f"Failed to read posterior for {entity_id}: {e}") from e

        if row is None:
            return None

        mean, std_dev, observation_count, last_updated = row
        return LatentPosterior(
            mean=mean,
            std_dev=std_dev,
            observation_count=observation_count,
            last_updated=last_updated,
        )

    def put(self, entity_id: str, posterior: LatentPosterior) -> None:
        query = f"""
            INSERT INTO {self.table}
            (entity_id, mean, std_dev, observation_count, last_updated)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (entity_id)
            DO UPDATE SET
                mean = EXCLUDED.mean,
                std_dev = EXCLUDED.std_dev,
                observation_count = EXCLUDED.observation_count,
                last_updated = EXCLUDED.last_updated
        """
        self._execute(
            query,
            (
                entity_id,
                Json(posterior.mean),
                Json(posterior.std_dev),
                posterior.observation_count,
                posterior.last_updated,
            ),
        )
        logger.debug(
            "Posterior stored",
            extra={"entity_id": entity_id, "observation_count": posterior.observation_count},
        )

    def touch_observation_timestamp(self, entity_id: str) -> None:
        query = f"UPDATE {self.table} SET last_observed_at = %s WHERE entity_id = %s"
        self._execute(query, (datetime.now(), entity_id))

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _execute(self, query: str, params: Optional[tuple] = None) -> None:
        try:
            with self.conn.cursor() as cursor:
                cursor.execute(query, params)
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise StorageError(f"Posterior store write failed: {e}") from e

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
