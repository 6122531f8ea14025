"""Async Cassandra connection using cassandra-asyncio-driver.

Provides:
- An explicitly constructed connection handle (one per process)
- Session with aexecute() for non-blocking queries
- Keyspace and table initialization (async)
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from ecolearn.config.settings import Settings
from ecolearn.progress.models import PROGRESS_TABLES_CQL


logger = structlog.get_logger(__name__)


class CassandraConnection:
    """Async Cassandra connection handle.

    Created once at application start-up and shut down with the
    application; services receive the session it produces.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._cluster: Cluster | None = None
        self._session = None  # Session type from cassandra_asyncio

    def connect(self):
        """Establish connection to the Cassandra cluster.

        Returns:
            Active Cassandra session with aexecute() support

        Raises:
            ConnectionError: If connection fails
        """
        if self._session is not None:
            return self._session

        settings = self.settings

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        self._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            self._session = self._cluster.connect()
            logger.info(
                "cassandra_connected",
                hosts=settings.cassandra_hosts,
                port=settings.cassandra_port,
            )
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        return self._session

    @property
    def session(self):
        """Active session, connecting if necessary."""
        if self._session is None:
            return self.connect()
        return self._session

    def disconnect(self) -> None:
        """Close connection to Cassandra."""
        if self._session is not None:
            self._session.shutdown()
            self._session = None
            logger.info("cassandra_session_closed")

        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None
            logger.info("cassandra_cluster_closed")


async def init_keyspace(session, keyspace: str, production: bool = False) -> None:
    """Create keyspace if not exists."""
    if production:
        replication = "'class': 'NetworkTopologyStrategy', 'datacenter1': 3"
    else:
        replication = "'class': 'SimpleStrategy', 'replication_factor': 1"

    await session.aexecute(f"""
        CREATE KEYSPACE IF NOT EXISTS {keyspace}
        WITH replication = {{{replication}}}
        AND durable_writes = true
    """)
    logger.info("keyspace_created", keyspace=keyspace)


async def init_progress_tables(session, keyspace: str) -> None:
    """Create watch progress tables."""
    for cql_template in PROGRESS_TABLES_CQL:
        await session.aexecute(cql_template.format(keyspace=keyspace))
    logger.info("progress_tables_created", keyspace=keyspace)


async def init_cassandra(connection: CassandraConnection):
    """Connect and make sure keyspace and tables exist.

    Returns:
        Configured Cassandra session with aexecute() support
    """
    settings = connection.settings
    session = connection.connect()

    await init_keyspace(
        session, settings.cassandra_keyspace, production=settings.is_production
    )
    session.set_keyspace(settings.cassandra_keyspace)
    await init_progress_tables(session, settings.cassandra_keyspace)

    logger.info("cassandra_initialized", keyspace=settings.cassandra_keyspace)
    return session
