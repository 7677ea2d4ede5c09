"""
Session data ingestion.

Sessions arrive as a pandas DataFrame with the six columns of
``config.SESSION_COLUMNS``. Everything entering the pipeline goes through
``validate_sessions`` first: a bad value stops the run with the offending row
instead of being coerced.
"""
import logging

import numpy as np
import pandas as pd

from streamflix import config
from streamflix.errors import MalformedInputError

logger = logging.getLogger(__name__)

ENUM_COLUMNS = {
    'content_type': config.CONTENT_TYPES,
    'device_type': config.DEVICE_TYPES,
    'subscription_tier': config.SUBSCRIPTION_TIERS,
}


def _reject(frame, bad, column, reason):
    """Raise for the first row flagged in ``bad``."""
    flags = bad.to_numpy(dtype=bool)
    if not flags.any():
        return
    pos = int(np.argmax(flags))
    raise MalformedInputError(
        reason,
        row=frame.index[pos],
        column=column,
        value=frame[column].iloc[pos],
    )


def validate_sessions(sessions: pd.DataFrame) -> pd.DataFrame:
    """
    Check a session table and return a normalized copy.

    The copy holds only the session columns, with ``session_date`` as
    midnight timestamps, ``minutes_watched`` as int64 and ``user_id`` as
    strings. The input frame is left untouched.

    Raises:
        MalformedInputError: missing columns, unparseable dates, negative,
            fractional, boolean or out-of-range minutes, empty user ids, or
            values outside the enums.
    """
    missing = [c for c in config.SESSION_COLUMNS if c not in sessions.columns]
    if missing:
        raise MalformedInputError(f"missing columns: {', '.join(missing)}")

    raw = sessions.loc[:, list(config.SESSION_COLUMNS)]
    out = raw.copy()

    ids = raw['user_id']
    _reject(raw, ids.isna() | (ids.astype(str).str.strip() == ''), 'user_id', 'empty user id')
    out['user_id'] = ids.astype(str)

    dates = pd.to_datetime(raw['session_date'], errors='coerce', format='mixed')
    _reject(raw, dates.isna(), 'session_date', 'unparseable date')
    if dates.dt.tz is not None:
        # keep the local calendar date the session was recorded on
        dates = dates.dt.tz_localize(None)
    out['session_date'] = dates.dt.normalize()

    is_bool = raw['minutes_watched'].map(lambda v: isinstance(v, (bool, np.bool_)))
    _reject(raw, is_bool, 'minutes_watched', 'boolean is not a number of minutes')
    minutes = pd.to_numeric(raw['minutes_watched'], errors='coerce')
    _reject(raw, minutes.isna(), 'minutes_watched', 'not a number')
    _reject(raw, minutes < 0, 'minutes_watched', 'negative minutes')
    _reject(raw, minutes.astype(float) >= 2.0 ** 63, 'minutes_watched', 'too large')
    _reject(raw, minutes % 1 != 0, 'minutes_watched', 'not a whole number of minutes')
    out['minutes_watched'] = minutes.astype('int64')

    for column, allowed in ENUM_COLUMNS.items():
        _reject(raw, ~raw[column].isin(allowed), column, f"expected one of {', '.join(allowed)}")

    logger.info("Validated %d session rows (%d users)", len(out), out['user_id'].nunique())
    return out


def load_sessions(path) -> pd.DataFrame:
    """Read a session CSV and validate it."""
    logger.info("Loading sessions from %s", path)
    sessions = pd.read_csv(path, dtype={'user_id': str})
    return validate_sessions(sessions)


def generate_sessions(n_sessions=config.N_SESSIONS,
                      n_users=config.N_USERS,
                      start=config.START_DATE,
                      end=config.END_DATE,
                      seed=config.RANDOM_SEED) -> pd.DataFrame:
    """
    Generate a synthetic StreamFlix session table.

    Each user gets a base tier. About 15% of non-basic users drop one tier
    at a random point and watch noticeably less from then on, so the
    downgrade report has something to find.
    """
    rng = np.random.RandomState(seed)
    start = pd.Timestamp(start)
    span_days = (pd.Timestamp(end) - start).days + 1

    user_ids = np.array([f"user_{i:05d}" for i in range(1, n_users + 1)])
    users = rng.randint(0, n_users, n_sessions)
    offsets = rng.randint(0, span_days, n_sessions)

    base_tier = rng.choice(len(config.SUBSCRIPTION_TIERS), size=n_users, p=[0.4, 0.35, 0.25])
    downgrader = (rng.rand(n_users) < 0.15) & (base_tier > 0)
    switch_day = rng.randint(min(30, span_days - 1), span_days, n_users)
    after_switch = downgrader[users] & (offsets >= switch_day[users])
    tier_idx = base_tier[users] - after_switch.astype(int)

    minutes = rng.exponential(35, n_sessions) + 5
    minutes = np.where(after_switch, minutes * 0.5, minutes)
    minutes = np.clip(np.round(minutes), 1, 240).astype('int64')

    sessions = pd.DataFrame({
        'user_id': user_ids[users],
        'session_date': start + pd.to_timedelta(offsets, unit='D'),
        'minutes_watched': minutes,
        'content_type': rng.choice(config.CONTENT_TYPES, n_sessions, p=[0.35, 0.45, 0.2]),
        'device_type': rng.choice(config.DEVICE_TYPES, n_sessions, p=[0.4, 0.25, 0.35]),
        'subscription_tier': np.array(config.SUBSCRIPTION_TIERS)[tier_idx],
    })
    sessions = sessions.sort_values(['session_date', 'user_id'], kind='mergesort').reset_index(drop=True)

    logger.info("Generated %d sessions for %d users", len(sessions), sessions['user_id'].nunique())
    return sessions
