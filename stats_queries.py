import os
import logging
from dataclasses import dataclass
from typing import List, NamedTuple, Optional

import pymysql
import pymysql.cursors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    db: str
    query_timeout: int = 5

    @staticmethod
    def from_env() -> "DBConfig":
        return DBConfig(
            host=os.getenv('DB_HOST', 'localhost'),
            port=int(os.getenv('DB_PORT', 3306)),
            user=os.getenv('DB_USER', 'flowview'),
            password=os.getenv('DB_PASSWORD', ''),
            db=os.getenv('DB_NAME', 'flowview'),
            query_timeout=int(os.getenv('DB_QUERY_TIMEOUT', 5)),
        )


class SessionSample(NamedTuple):
    bras: str
    dslam: str
    session_count: int


class BrasTotal(NamedTuple):
    bras: str
    session_count: int


class RateChange(NamedTuple):
    time_millis: int
    dslam: str
    cdr_rate_change: float


class CdrStatSample(NamedTuple):
    time_millis: int
    bras: str
    dslam: str
    cdr_rate: float
    cdr_rate_change: float
    start_cdr_ratio: float
    short_stop_cdr_ratio: float


def get_connection(db_config):
    """Create a database connection.

    MAX_EXECUTION_TIME caps each SELECT as a whole on the server and the
    read timeout caps each socket read; either one failing raises a
    MySQLError and the query is not retried.
    """
    logger.info(f"Connecting to database {db_config.db} at {db_config.host}:{db_config.port}")
    try:
        return pymysql.connect(
            host=db_config.host,
            port=db_config.port,
            user=db_config.user,
            password=db_config.password,
            database=db_config.db,
            charset='utf8mb4',
            cursorclass=pymysql.cursors.DictCursor,
            connect_timeout=db_config.query_timeout,
            read_timeout=db_config.query_timeout,
            init_command=f"SET SESSION MAX_EXECUTION_TIME={db_config.query_timeout * 1000}",
        )
    except pymysql.err.MySQLError as e:
        logger.error(f"Failed to connect to {db_config.db} at {db_config.host}:{db_config.port}: {str(e)}")
        raise


def latest_session_time(connection) -> Optional[int]:
    """Timestamp of the most recent SESSIONS snapshot, None if the table is empty"""
    with connection.cursor() as cursor:
        cursor.execute("SELECT MAX(TIMEMILLIS) AS max_time FROM SESSIONS")
        row = cursor.fetchone()
    if row is None or row['max_time'] is None:
        return None
    return int(row['max_time'])


def sessions_at(connection, time_millis) -> List[SessionSample]:
    query = """
        SELECT BRAS, DSLAM, SESSIONS
        FROM SESSIONS
        WHERE TIMEMILLIS = %s
        ORDER BY BRAS, DSLAM
    """
    with connection.cursor() as cursor:
        cursor.execute(query, (time_millis,))
        results = cursor.fetchall()
    return [SessionSample(row['BRAS'], row['DSLAM'], int(row['SESSIONS'])) for row in results]


def sessions_per_bras_at(connection, time_millis) -> List[BrasTotal]:
    query = """
        SELECT BRAS, SUM(SESSIONS) AS total_sessions
        FROM SESSIONS
        WHERE TIMEMILLIS = %s
        GROUP BY BRAS
        ORDER BY BRAS
    """
    with connection.cursor() as cursor:
        cursor.execute(query, (time_millis,))
        results = cursor.fetchall()

    # SUM comes back as Decimal, or NULL for a group with no counted rows
    return [
        BrasTotal(row['BRAS'], int(row['total_sessions']) if row['total_sessions'] is not None else 0)
        for row in results
    ]


def rate_changes_by_dslam(connection) -> List[RateChange]:
    query = """
        SELECT TIMEMILLIS, DSLAM, CDRRATECHANGE
        FROM CDRSTATS
        ORDER BY BRAS, DSLAM
    """
    with connection.cursor() as cursor:
        cursor.execute(query)
        results = cursor.fetchall()
    return [
        RateChange(int(row['TIMEMILLIS']), row['DSLAM'], float(row['CDRRATECHANGE']))
        for row in results
    ]


def rate_history(connection, dslam) -> List[CdrStatSample]:
    """All CDRSTATS samples of one dslam, oldest first"""
    query = """
        SELECT TIMEMILLIS, BRAS, DSLAM, CDRRATE, CDRRATECHANGE,
               STARTCDRRATIO, SHORTSTOPCDRRATIO
        FROM CDRSTATS
        WHERE DSLAM = %s
        ORDER BY TIMEMILLIS ASC
    """
    with connection.cursor() as cursor:
        cursor.execute(query, (dslam,))
        results = cursor.fetchall()
    return [
        CdrStatSample(
            int(row['TIMEMILLIS']),
            row['BRAS'],
            row['DSLAM'],
            float(row['CDRRATE']),
            float(row['CDRRATECHANGE']),
            float(row['STARTCDRRATIO']),
            float(row['SHORTSTOPCDRRATIO']),
        )
        for row in results
    ]


def distinct_dslams(connection) -> List[str]:
    # Grouping keeps the bras/dslam order used when numbering dslams
    query = """
        SELECT BRAS, DSLAM
        FROM CDRSTATS
        GROUP BY BRAS, DSLAM
        ORDER BY BRAS, DSLAM
    """
    with connection.cursor() as cursor:
        cursor.execute(query)
        results = cursor.fetchall()

    return list(dict.fromkeys(row['DSLAM'] for row in results))
