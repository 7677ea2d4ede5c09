import sqlite3

import pandas as pd
import pytest

from streamflix import InvalidParameterError
from streamflix import queries

AS_OF = '2024-12-31'


@pytest.fixture(scope='module')
def conn(synthetic_pipeline):
    conn = sqlite3.connect(':memory:')
    queries.load_sessions_table(synthetic_pipeline.sessions, conn)
    yield conn
    conn.close()


def _assert_same(sql_result, pandas_result, atol):
    # ROUND in SQLite and numpy can disagree by one unit on exact halves
    pd.testing.assert_frame_equal(
        sql_result.reset_index(drop=True),
        pandas_result.reset_index(drop=True),
        check_dtype=False,
        check_exact=False,
        rtol=0,
        atol=atol,
    )


def test_load_sessions_table(conn, synthetic_sessions):
    count, = conn.execute('SELECT COUNT(*) FROM sessions').fetchone()
    assert count == len(synthetic_sessions)

    first_date, = conn.execute('SELECT MIN(session_date) FROM sessions').fetchone()
    assert first_date == synthetic_sessions['session_date'].min().strftime('%Y-%m-%d')


def test_schema_rejects_bad_tier(conn):
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO sessions (user_id, session_date, minutes_watched, content_type, device_type, subscription_tier) "
            "VALUES ('x', '2024-01-01', 10, 'movie', 'tv', 'gold')"
        )


def test_mom_growth_matches(conn, synthetic_pipeline):
    _assert_same(queries.run_report(conn, 'mom_growth'),
                 synthetic_pipeline.month_over_month_growth(), atol=0.011)


def test_mom_growth_year_filter(conn, synthetic_pipeline):
    _assert_same(queries.run_report(conn, 'mom_growth', year=2024),
                 synthetic_pipeline.month_over_month_growth(year=2024), atol=0.011)
    assert queries.run_report(conn, 'mom_growth', year=2019).empty


def test_top_engaged_users_matches(conn, synthetic_pipeline):
    _assert_same(queries.run_report(conn, 'top_engaged_users', as_of=AS_OF),
                 synthetic_pipeline.top_engaged_users(as_of=AS_OF), atol=0.11)


def test_top_engaged_users_window(conn, synthetic_pipeline):
    _assert_same(queries.run_report(conn, 'top_engaged_users', as_of='2024-06-30', window_days=7, top_n=25),
                 synthetic_pipeline.top_engaged_users(as_of='2024-06-30', window_days=7, top_n=25), atol=0.11)


@pytest.mark.parametrize('threshold', [40, 20, 80])
def test_content_performance_matches(conn, synthetic_pipeline, threshold):
    _assert_same(queries.run_report(conn, 'content_performance', completion_threshold=threshold),
                 synthetic_pipeline.content_performance(completion_threshold=threshold), atol=0.011)


def test_cohort_retention_matches(conn, synthetic_pipeline):
    _assert_same(queries.run_report(conn, 'cohort_retention'),
                 synthetic_pipeline.cohort_retention(), atol=0.11)


def test_downgrades_match(conn, synthetic_pipeline):
    keys = ['user_id', 'month']
    sql_result = queries.run_report(conn, 'downgrades', limit=10000).sort_values(keys)
    pandas_result = synthetic_pipeline.downgrade_detection(limit=10000).sort_values(keys)

    assert not sql_result.empty
    _assert_same(sql_result, pandas_result, atol=0.11)


def test_downgrade_limit(conn):
    assert len(queries.run_report(conn, 'downgrades', limit=3)) <= 3


def test_schema_ddl_has_checks():
    ddl = queries.schema_ddl()
    assert 'CREATE TABLE sessions' in ddl
    assert "CHECK (subscription_tier IN ('basic', 'standard', 'premium'))" in ddl


def test_run_all_reports(conn):
    reports = queries.run_all_reports(conn, as_of=AS_OF)
    assert set(reports) == set(queries.REPORT_QUERIES)


def test_unknown_report(conn):
    with pytest.raises(InvalidParameterError):
        queries.run_report(conn, 'churn')
