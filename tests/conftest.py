"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest

import app as flowview_app


class FakeCursor:
    """Answers the SELECTs issued by stats_queries from in-memory rows."""

    def __init__(self, database):
        self.database = database
        self._results = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params=None):
        self.database.executed.append((query, params))
        if self.database.error is not None:
            raise self.database.error
        self._results = self.database.answer(query, params)

    def fetchone(self):
        return self._results[0] if self._results else None

    def fetchall(self):
        return list(self._results)


class FakeConnection:
    def __init__(self, database):
        self.database = database
        self.open = True

    def cursor(self):
        return FakeCursor(self.database)

    def close(self):
        self.open = False


class FakeDatabase:
    """SESSIONS and CDRSTATS tables held as lists of column dicts."""

    def __init__(self):
        self.sessions = []
        self.cdrstats = []
        self.executed = []
        self.connections = []
        self.error = None

    def add_session(self, time_millis, bras, dslam, sessions):
        self.sessions.append({'TIMEMILLIS': time_millis, 'BRAS': bras, 'DSLAM': dslam, 'SESSIONS': sessions})

    def add_cdr_stat(self, time_millis, bras, dslam, rate, change, start_ratio=0.0, short_stop_ratio=0.0):
        self.cdrstats.append({
            'TIMEMILLIS': time_millis,
            'BRAS': bras,
            'DSLAM': dslam,
            'CDRRATE': rate,
            'CDRRATECHANGE': change,
            'STARTCDRRATIO': start_ratio,
            'SHORTSTOPCDRRATIO': short_stop_ratio,
        })

    def connect(self, db_config):
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection

    def answer(self, query, params):
        if 'FROM SESSIONS' in query:
            if 'MAX(TIMEMILLIS)' in query:
                times = [row['TIMEMILLIS'] for row in self.sessions]
                return [{'max_time': max(times) if times else None}]
            snapshot = [row for row in self.sessions if row['TIMEMILLIS'] == params[0]]
            if 'GROUP BY BRAS' in query:
                totals = {}
                for row in snapshot:
                    totals[row['BRAS']] = totals.get(row['BRAS'], Decimal(0)) + row['SESSIONS']
                return [{'BRAS': bras, 'total_sessions': totals[bras]} for bras in sorted(totals)]
            return sorted(snapshot, key=lambda row: (row['BRAS'], row['DSLAM']))

        if 'FROM CDRSTATS' in query:
            if 'WHERE DSLAM' in query:
                rows = [row for row in self.cdrstats if row['DSLAM'] == params[0]]
                return sorted(rows, key=lambda row: row['TIMEMILLIS'])
            rows = sorted(self.cdrstats, key=lambda row: (row['BRAS'], row['DSLAM']))
            if 'GROUP BY BRAS, DSLAM' in query:
                pairs = dict.fromkeys((row['BRAS'], row['DSLAM']) for row in rows)
                return [{'BRAS': bras, 'DSLAM': dslam} for bras, dslam in pairs]
            return rows

        raise AssertionError(f"Unexpected query: {query}")


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def connection(database):
    return FakeConnection(database)


@pytest.fixture
def now():
    return 1_700_000_000_000


@pytest.fixture
def client(database, now, monkeypatch):
    """Flask test client backed by the in-memory database, clock frozen at now."""
    monkeypatch.setattr(flowview_app, 'get_connection', database.connect)
    monkeypatch.setattr(flowview_app, 'current_millis', lambda: now)
    flowview_app.app.config['TESTING'] = True
    with flowview_app.app.test_client() as client:
        yield client
