from flask import Flask, request, jsonify
import pymysql
import os
import time
from dotenv import load_dotenv
import logging
from collections import OrderedDict

import stats_queries
from stats_queries import DBConfig, get_connection
from stats_transform import (
    EmptyTableError,
    rate_change_events,
    rate_history_points,
    sessions_snapshot,
)


# Load environment variables
load_dotenv()

app = Flask(__name__)
app.json.sort_keys = False  # This ensures that jsonify doesn't sort the keys alphabetically

# Configure logging
logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO').upper())
logger = logging.getLogger(__name__)

# Database configuration
db_config = DBConfig.from_env()

# Used by /cdrStats/cdrRateHist when no dslam is requested
DEFAULT_DSLAM = os.getenv('DEFAULT_DSLAM', '10.0.0.1/2')


def current_millis():
    return int(time.time() * 1000)


@app.errorhandler(EmptyTableError)
def handle_empty_table(e):
    logger.error(f"Error serving {request.path}: {str(e)}")
    return jsonify({'error': str(e)}), 500


@app.errorhandler(pymysql.err.MySQLError)
def handle_database_error(e):
    # Query timeouts surface here as OperationalError
    logger.error(f"Database error serving {request.path}: {str(e)}")
    return jsonify({'error': f"Error querying {db_config.db}: {str(e)}"}), 500


@app.route('/cdrStats/sessions', methods=['GET'])
def get_sessions():
    """Number of sessions per DSLAM and per BRAS in the latest SESSIONS snapshot"""
    logger.info("Requested /cdrStats/sessions")

    connection = get_connection(db_config)
    try:
        latest = stats_queries.latest_session_time(connection)
        if latest is None:
            raise EmptyTableError('SESSIONS')

        per_dslam = stats_queries.sessions_at(connection, latest)
        per_bras = stats_queries.sessions_per_bras_at(connection, latest)
    finally:
        connection.close()

    return jsonify(sessions_snapshot(per_dslam, per_bras))


@app.route('/cdrStats/cdrRateChange', methods=['GET'])
def get_cdr_rate_change():
    """Events with a significant increase or decrease of the CDR arrival rate.

    Each event is [seconds since event, dslam id, bucket] where bucket is one
    of -2, -1, 1, 2 (-2 being a drop below 50% of the previous rate). The
    response also carries the id to dslam map used by the web page to label
    graph rows, and the age in seconds of the newest sample.
    """
    logger.info("Requested /cdrStats/cdrRateChange")

    now = current_millis()

    connection = get_connection(db_config)
    try:
        rate_changes = stats_queries.rate_changes_by_dslam(connection)
    finally:
        connection.close()

    return jsonify(rate_change_events(rate_changes, now))


@app.route('/cdrStats/cdrRateHist', methods=['GET'])
def get_cdr_rate_hist():
    """Historical CDR rate for a specific DSLAM"""
    dslam = request.args.get('dslam') or DEFAULT_DSLAM

    logger.info(f"Requested /cdrStats/cdrRateHist for {dslam}")

    now = current_millis()

    connection = get_connection(db_config)
    try:
        samples = stats_queries.rate_history(connection, dslam)
    finally:
        connection.close()

    response = OrderedDict([
        ('cdrRates', rate_history_points(samples, now)),
        ('dslam', dslam)
    ])

    logger.debug(f"Rate history response: {response}")

    return jsonify(response)


@app.route('/cdrStats/dslams', methods=['GET'])
def get_dslams():
    """Distinct DSLAMs present in CDRSTATS, for the history selector"""
    logger.info("Requested /cdrStats/dslams")

    connection = get_connection(db_config)
    try:
        dslams = stats_queries.distinct_dslams(connection)
    finally:
        connection.close()

    return jsonify({'dslams': dslams})


if __name__ == '__main__':
    # For development only
    app.run(debug=False)
