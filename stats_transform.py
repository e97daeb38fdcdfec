"""Shape SESSIONS/CDRSTATS rows into the arrays-of-arrays consumed by the charts.

Everything here is a pure function of its arguments so that each request
recomputes its own mappings.
"""
from types import MappingProxyType


class EmptyTableError(Exception):
    """An aggregate (MAX over timestamps) was requested on a table with no rows"""

    def __init__(self, table):
        self.table = table
        super().__init__(f"Table {table} has no rows, latest sample time is undefined")


def seconds_since(current_millis, time_millis):
    """Whole seconds elapsed between two epoch-millisecond timestamps.

    Division truncates toward zero, so a sample 1500 ms in the future
    reports -1 rather than the -2 that floor division would give.
    """
    elapsed = current_millis - time_millis
    if elapsed < 0:
        return -(-elapsed // 1000)
    return elapsed // 1000


def rate_change_bucket(change):
    """Classify a relative CDR rate change into -2, -1, 0, 1 or 2.

    -2 means the rate dropped below half of the previous sample, 2 that it
    grew by more than half.
    """
    if change < -0.5:
        return -2
    elif change < -0.25:
        return -1
    elif change <= 0.25:
        return 0
    elif change <= 0.5:
        return 1
    else:
        return 2


def build_dslam_ids(dslams):
    """Number dslams densely from 0 in first-seen order.

    Returns (dslam_to_id, id_to_dslam) as read-only mappings.
    """
    dslam_to_id = {}
    for dslam in dslams:
        if dslam not in dslam_to_id:
            dslam_to_id[dslam] = len(dslam_to_id)
    id_to_dslam = {dslam_id: dslam for dslam, dslam_id in dslam_to_id.items()}
    return MappingProxyType(dslam_to_id), MappingProxyType(id_to_dslam)


def session_per_dslam_to_array(sample):
    # dslam goes first for the chart, unlike the table column order
    return [sample.dslam, sample.bras, sample.session_count]


def session_per_bras_to_array(total):
    return [total.bras, total.session_count]


def sessions_snapshot(per_dslam, per_bras):
    return {
        'sessionsPerDslam': [session_per_dslam_to_array(sample) for sample in per_dslam],
        'sessionsPerBras': [session_per_bras_to_array(total) for total in per_bras],
    }


def rate_change_events(rate_changes, current_millis):
    """Build the cdrRateChange response from rows sorted by bras and dslam.

    Rows whose change is not significant (bucket 0) are left out of the
    events, but still count for maxTime.
    """
    if not rate_changes:
        raise EmptyTableError('CDRSTATS')

    dslam_to_id, id_to_dslam = build_dslam_ids(row.dslam for row in rate_changes)

    events = []
    for row in rate_changes:
        bucket = rate_change_bucket(row.cdr_rate_change)
        if bucket != 0:
            events.append([seconds_since(current_millis, row.time_millis), dslam_to_id[row.dslam], bucket])

    max_time = max(row.time_millis for row in rate_changes)

    return {
        # JSON object keys are strings
        'dslamMap': {str(dslam_id): dslam for dslam_id, dslam in id_to_dslam.items()},
        'events': events,
        'maxTime': seconds_since(current_millis, max_time),
    }


def rate_history_points(samples, current_millis):
    return [[seconds_since(current_millis, sample.time_millis), sample.cdr_rate] for sample in samples]
