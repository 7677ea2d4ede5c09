"""
The StreamFlix reports as SQL, run against an SQLite copy of the session table.

Column names match ``streamflix.pipeline`` so either result can feed the
charts or be compared with the other.
"""
import logging
import sqlite3

import pandas as pd

from streamflix import config
from streamflix.errors import InvalidParameterError

logger = logging.getLogger(__name__)

SESSIONS_DDL = """
CREATE TABLE sessions (
    session_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id VARCHAR(50) NOT NULL,
    session_date DATE NOT NULL,
    minutes_watched INTEGER NOT NULL CHECK (minutes_watched >= 0),
    content_type VARCHAR(20) NOT NULL CHECK (content_type IN ('movie', 'tv_show', 'documentary')),
    device_type VARCHAR(20) NOT NULL CHECK (device_type IN ('mobile', 'web', 'tv')),
    subscription_tier VARCHAR(20) NOT NULL CHECK (subscription_tier IN ('basic', 'standard', 'premium'))
);

CREATE INDEX idx_sessions_date ON sessions(session_date);
CREATE INDEX idx_sessions_user ON sessions(user_id);
"""

# Query 1: Month-over-month growth in total minutes watched
MOM_GROWTH_QUERY = """
WITH monthly_totals AS (
    SELECT
        strftime('%Y-%m', session_date) AS month,
        SUM(minutes_watched) AS total_minutes
    FROM sessions
    WHERE :year IS NULL OR CAST(strftime('%Y', session_date) AS INTEGER) = :year
    GROUP BY strftime('%Y-%m', session_date)
),
with_previous AS (
    SELECT
        month,
        total_minutes,
        LAG(total_minutes) OVER (ORDER BY month) AS prev_month_minutes
    FROM monthly_totals
)
SELECT
    month,
    total_minutes,
    prev_month_minutes,
    ROUND(
        ((total_minutes - prev_month_minutes) * 1.0 / NULLIF(prev_month_minutes, 0)) * 100,
        2
    ) AS mom_growth_rate_pct
FROM with_previous
WHERE prev_month_minutes IS NOT NULL
ORDER BY month;
"""

# Query 2: Top engaged users over the trailing window
TOP_ENGAGED_QUERY = """
WITH user_engagement AS (
    SELECT
        user_id,
        SUM(minutes_watched) AS total_minutes,
        COUNT(*) AS session_count,
        COUNT(DISTINCT content_type) AS content_variety,
        COUNT(DISTINCT device_type) AS device_variety,
        AVG(minutes_watched) AS avg_session_duration
    FROM sessions
    WHERE session_date >= date(:as_of, '-' || :window_days || ' days')
    GROUP BY user_id
)
SELECT
    user_id,
    total_minutes,
    session_count,
    content_variety,
    device_variety,
    ROUND(avg_session_duration, 1) AS avg_session_duration,
    ROUND(
        (total_minutes * :minutes_weight) + (session_count * :session_weight) + (content_variety * :variety_weight),
        2
    ) AS engagement_score
FROM user_engagement
ORDER BY engagement_score DESC, user_id ASC
LIMIT :top_n;
"""

# Query 3: Content with above-average watch time but below-average completion
CONTENT_PERFORMANCE_QUERY = """
WITH content_metrics AS (
    SELECT
        content_type,
        AVG(minutes_watched) AS avg_watch_time,
        COUNT(*) AS session_count,
        AVG(CASE WHEN minutes_watched >= :threshold THEN 1.0 ELSE 0.0 END) AS completion_rate
    FROM sessions
    GROUP BY content_type
),
overall_averages AS (
    SELECT
        AVG(minutes_watched) AS overall_avg_watch_time,
        AVG(CASE WHEN minutes_watched >= :threshold THEN 1.0 ELSE 0.0 END) AS overall_avg_completion
    FROM sessions
)
SELECT
    cm.content_type,
    ROUND(cm.avg_watch_time, 2) AS avg_watch_time,
    ROUND(cm.completion_rate * 100, 2) AS completion_rate_pct,
    ROUND(oa.overall_avg_watch_time, 2) AS overall_avg_watch,
    ROUND(oa.overall_avg_completion * 100, 2) AS overall_avg_completion_pct,
    cm.session_count,
    CASE
        WHEN cm.avg_watch_time > oa.overall_avg_watch_time
             AND cm.completion_rate < oa.overall_avg_completion
        THEN :high_label
        ELSE :normal_label
    END AS category
FROM content_metrics cm
CROSS JOIN overall_averages oa
ORDER BY cm.avg_watch_time DESC, cm.content_type;
"""

# Query 4: Cohort retention by first activity month
COHORT_RETENTION_QUERY = """
WITH user_cohorts AS (
    SELECT
        user_id,
        strftime('%Y-%m', MIN(session_date)) AS cohort_month
    FROM sessions
    GROUP BY user_id
),
user_activity AS (
    SELECT
        s.user_id,
        uc.cohort_month,
        (CAST(strftime('%Y', s.session_date) AS INTEGER) - CAST(substr(uc.cohort_month, 1, 4) AS INTEGER)) * 12
            + (CAST(strftime('%m', s.session_date) AS INTEGER) - CAST(substr(uc.cohort_month, 6, 2) AS INTEGER))
            AS months_since_signup
    FROM sessions s
    JOIN user_cohorts uc ON s.user_id = uc.user_id
),
cohort_sizes AS (
    SELECT
        cohort_month,
        COUNT(DISTINCT user_id) AS cohort_size
    FROM user_cohorts
    GROUP BY cohort_month
),
retention AS (
    SELECT
        cohort_month,
        months_since_signup,
        COUNT(DISTINCT user_id) AS retained_users
    FROM user_activity
    GROUP BY cohort_month, months_since_signup
)
SELECT
    r.cohort_month,
    cs.cohort_size,
    r.months_since_signup,
    r.retained_users,
    ROUND((r.retained_users * 1.0 / cs.cohort_size) * 100, 1) AS retention_rate_pct
FROM retention r
JOIN cohort_sizes cs ON r.cohort_month = cs.cohort_month
ORDER BY r.cohort_month, r.months_since_signup;
"""

# Query 5: Users who downgraded and watched less
DOWNGRADE_QUERY = """
WITH tier_ranking (tier_name, tier_rank) AS (
    VALUES ('premium', 3), ('standard', 2), ('basic', 1)
),
user_monthly_activity AS (
    SELECT
        user_id,
        strftime('%Y-%m', session_date) AS month,
        MAX(subscription_tier) AS tier_at_month,
        SUM(minutes_watched) AS monthly_minutes,
        COUNT(*) AS session_count
    FROM sessions
    GROUP BY user_id, strftime('%Y-%m', session_date)
),
with_previous AS (
    SELECT
        uma.*,
        LAG(tier_at_month) OVER (PARTITION BY user_id ORDER BY month) AS prev_tier,
        LAG(monthly_minutes) OVER (PARTITION BY user_id ORDER BY month) AS prev_minutes
    FROM user_monthly_activity uma
)
SELECT
    wp.user_id,
    wp.month,
    wp.prev_tier AS previous_tier,
    wp.tier_at_month AS new_tier,
    wp.prev_minutes AS previous_minutes,
    wp.monthly_minutes AS current_minutes,
    ROUND(((wp.monthly_minutes - wp.prev_minutes) * 1.0 / wp.prev_minutes) * 100, 1) AS watch_time_change_pct,
    wp.session_count
FROM with_previous wp
JOIN tier_ranking tr_prev ON wp.prev_tier = tr_prev.tier_name
JOIN tier_ranking tr_curr ON wp.tier_at_month = tr_curr.tier_name
WHERE tr_curr.tier_rank < tr_prev.tier_rank
  AND wp.monthly_minutes < wp.prev_minutes
ORDER BY watch_time_change_pct ASC, wp.user_id, wp.month
LIMIT :limit;
"""

REPORT_QUERIES = {
    'mom_growth': MOM_GROWTH_QUERY,
    'top_engaged_users': TOP_ENGAGED_QUERY,
    'content_performance': CONTENT_PERFORMANCE_QUERY,
    'cohort_retention': COHORT_RETENTION_QUERY,
    'downgrades': DOWNGRADE_QUERY,
}


def schema_ddl() -> str:
    """The CREATE TABLE and CREATE INDEX statements for the sessions table."""
    return SESSIONS_DDL


def load_sessions_table(sessions: pd.DataFrame, conn: sqlite3.Connection) -> None:
    """Create the sessions table in ``conn`` and insert a validated session frame."""
    conn.executescript("DROP TABLE IF EXISTS sessions;" + SESSIONS_DDL)
    rows = sessions.assign(session_date=sessions['session_date'].dt.strftime('%Y-%m-%d'))
    rows.loc[:, list(config.SESSION_COLUMNS)].to_sql('sessions', conn, index=False, if_exists='append')
    logger.info("Loaded %d rows into SQLite table 'sessions'", len(rows))


def _report_params(name, year=None, window_days=config.DEFAULT_WINDOW_DAYS, as_of=None,
                   top_n=config.DEFAULT_TOP_N, completion_threshold=config.DEFAULT_COMPLETION_THRESHOLD,
                   limit=config.DEFAULT_DOWNGRADE_LIMIT):
    if name == 'mom_growth':
        return {'year': year}
    if name == 'top_engaged_users':
        as_of = pd.Timestamp(as_of if as_of is not None else pd.Timestamp.today()).strftime('%Y-%m-%d')
        return {
            'as_of': as_of,
            'window_days': int(window_days),
            'top_n': int(top_n),
            'minutes_weight': config.MINUTES_WEIGHT,
            'session_weight': config.SESSION_WEIGHT,
            'variety_weight': config.VARIETY_WEIGHT,
        }
    if name == 'content_performance':
        return {
            'threshold': completion_threshold,
            'high_label': config.HIGH_WATCH_LOW_COMPLETION,
            'normal_label': config.NORMAL,
        }
    if name == 'downgrades':
        return {'limit': int(limit)}
    return {}


def run_report(conn: sqlite3.Connection, name: str, **params) -> pd.DataFrame:
    """Run one named report query with its parameters bound."""
    if name not in REPORT_QUERIES:
        raise InvalidParameterError(f"unknown report {name!r}, expected one of {', '.join(REPORT_QUERIES)}")
    result = pd.read_sql_query(REPORT_QUERIES[name], conn, params=_report_params(name, **params))
    logger.debug("SQL report %s returned %d rows", name, len(result))
    return result


def run_all_reports(conn: sqlite3.Connection, **params) -> dict:
    """Run every report query, keyed by report name."""
    return {name: run_report(conn, name, **params) for name in REPORT_QUERIES}
