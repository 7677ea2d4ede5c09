"""
Reporting tables over StreamFlix viewing sessions.

Each report is an independent group-then-window computation over the same
validated session table:

- month-over-month growth of total minutes watched
- top engaged users over a trailing window
- content types with high watch time but low completion
- monthly cohort retention
- tier downgrades paired with lower watch time
"""
import logging
from datetime import date

import numpy as np
import pandas as pd

from streamflix import config
from streamflix.data import validate_sessions
from streamflix.errors import InvalidParameterError

logger = logging.getLogger(__name__)

MONTHLY_TOTAL_COLUMNS = ['month', 'total_minutes']
MOM_COLUMNS = ['month', 'total_minutes', 'prev_month_minutes', 'mom_growth_rate_pct']
ENGAGEMENT_COLUMNS = [
    'user_id', 'total_minutes', 'session_count', 'content_variety',
    'device_variety', 'avg_session_duration', 'engagement_score',
]
CONTENT_COLUMNS = [
    'content_type', 'avg_watch_time', 'completion_rate_pct', 'overall_avg_watch',
    'overall_avg_completion_pct', 'session_count', 'category',
]
COHORT_COLUMNS = [
    'cohort_month', 'cohort_size', 'months_since_signup', 'retained_users', 'retention_rate_pct',
]
DOWNGRADE_COLUMNS = [
    'user_id', 'month', 'previous_tier', 'new_tier', 'previous_minutes',
    'current_minutes', 'watch_time_change_pct', 'session_count',
]


def _months(dates: pd.Series) -> pd.Series:
    return dates.dt.to_period('M')


class AnalyticsPipeline:
    """Compute the StreamFlix reports from one session table."""

    def __init__(self, sessions: pd.DataFrame, validate: bool = True):
        self._sessions = validate_sessions(sessions) if validate else sessions

    @property
    def sessions(self) -> pd.DataFrame:
        """A copy of the validated session table."""
        return self._sessions.copy()

    def monthly_totals(self, year=None) -> pd.DataFrame:
        df = self._sessions
        if year is not None:
            df = df[df['session_date'].dt.year == year]
        if df.empty:
            return pd.DataFrame(columns=MONTHLY_TOTAL_COLUMNS)

        totals = (df.groupby(_months(df['session_date']).rename('month'), sort=True)['minutes_watched']
                  .sum()
                  .rename('total_minutes')
                  .reset_index())
        totals['month'] = totals['month'].astype(str)
        totals['total_minutes'] = totals['total_minutes'].astype('int64')
        return totals[MONTHLY_TOTAL_COLUMNS]

    def month_over_month_growth(self, year=None) -> pd.DataFrame:
        """
        Percentage change in total minutes between consecutive months.

        The previous month is the previous month present in the data, so a
        gap in activity compares across the gap. The first month has nothing
        to compare with and produces no row. A previous total of zero gives
        NaN growth.
        """
        totals = self.monthly_totals(year)
        if len(totals) < 2:
            return pd.DataFrame(columns=MOM_COLUMNS)
        totals['prev_month_minutes'] = totals['total_minutes'].shift(1)

        previous = totals['prev_month_minutes'].where(totals['prev_month_minutes'] != 0)
        totals['mom_growth_rate_pct'] = (
            (totals['total_minutes'] - previous) / previous * 100
        ).round(2)

        growth = totals[totals['prev_month_minutes'].notna()].reset_index(drop=True)
        growth['prev_month_minutes'] = growth['prev_month_minutes'].astype('int64')
        logger.debug("Computed MoM growth for %d months", len(growth))
        return growth[MOM_COLUMNS]

    def top_engaged_users(self,
                          window_days=config.DEFAULT_WINDOW_DAYS,
                          as_of=None,
                          top_n=config.DEFAULT_TOP_N) -> pd.DataFrame:
        """
        Users ranked by engagement score over the trailing window.

        Sessions on or after ``as_of - window_days`` count; ``as_of``
        defaults to today. Ties on score are broken by ``user_id``.
        """
        if window_days < 0:
            raise InvalidParameterError(f"window_days must be >= 0, got {window_days}")
        if top_n < 0:
            raise InvalidParameterError(f"top_n must be >= 0, got {top_n}")

        as_of = pd.Timestamp(as_of if as_of is not None else date.today()).normalize()
        cutoff = as_of - pd.Timedelta(days=window_days)
        recent = self._sessions[self._sessions['session_date'] >= cutoff]
        if recent.empty:
            return pd.DataFrame(columns=ENGAGEMENT_COLUMNS)

        engagement = recent.groupby('user_id').agg(
            total_minutes=('minutes_watched', 'sum'),
            session_count=('minutes_watched', 'size'),
            content_variety=('content_type', 'nunique'),
            device_variety=('device_type', 'nunique'),
            avg_session_duration=('minutes_watched', 'mean'),
        ).reset_index()

        engagement['engagement_score'] = (
            engagement['total_minutes'] * config.MINUTES_WEIGHT
            + engagement['session_count'] * config.SESSION_WEIGHT
            + engagement['content_variety'] * config.VARIETY_WEIGHT
        ).astype(float).round(2)
        engagement['avg_session_duration'] = engagement['avg_session_duration'].round(1)

        top = (engagement.sort_values(['engagement_score', 'user_id'],
                                      ascending=[False, True], kind='mergesort')
               .head(top_n)
               .reset_index(drop=True))
        logger.debug("%d users active since %s, returning %d", len(engagement), cutoff.date(), len(top))
        return top[ENGAGEMENT_COLUMNS]

    def content_performance(self, completion_threshold=config.DEFAULT_COMPLETION_THRESHOLD) -> pd.DataFrame:
        """
        Watch time and completion per content type, against the overall averages.

        A session counts as completed when it reaches ``completion_threshold``
        minutes. Content watched longer than average but completed less often
        than average is labelled HIGH WATCH / LOW COMPLETION; both comparisons
        are strict and use unrounded values.
        """
        df = self._sessions
        if df.empty:
            return pd.DataFrame(columns=CONTENT_COLUMNS)
        completed = (df['minutes_watched'] >= completion_threshold).astype(float)

        metrics = df.assign(completed=completed).groupby('content_type').agg(
            avg_watch_time=('minutes_watched', 'mean'),
            session_count=('minutes_watched', 'size'),
            completion_rate=('completed', 'mean'),
        ).reset_index()

        overall_watch = df['minutes_watched'].mean()
        overall_completion = completed.mean()

        high_watch = metrics['avg_watch_time'] > overall_watch
        low_completion = metrics['completion_rate'] < overall_completion
        metrics['category'] = np.where(high_watch & low_completion,
                                       config.HIGH_WATCH_LOW_COMPLETION, config.NORMAL)

        metrics = metrics.sort_values(['avg_watch_time', 'content_type'],
                                      ascending=[False, True], kind='mergesort').reset_index(drop=True)
        metrics['completion_rate_pct'] = (metrics['completion_rate'] * 100).round(2)
        metrics['avg_watch_time'] = metrics['avg_watch_time'].round(2)
        metrics['overall_avg_watch'] = round(overall_watch, 2)
        metrics['overall_avg_completion_pct'] = round(overall_completion * 100, 2)
        return metrics[CONTENT_COLUMNS]

    def cohort_retention(self) -> pd.DataFrame:
        """
        Share of each first-activity cohort active N months after joining.

        A user's cohort is the month of their earliest session. Cohort size
        is the number of users in that cohort and does not change with the
        offset, so offset 0 is always 100%.
        """
        df = self._sessions
        if df.empty:
            return pd.DataFrame(columns=COHORT_COLUMNS)
        first_session = df.groupby('user_id')['session_date'].transform('min')

        activity = pd.DataFrame({
            'user_id': df['user_id'],
            'cohort_month': first_session.dt.strftime('%Y-%m'),
            'months_since_signup': (
                (df['session_date'].dt.year - first_session.dt.year) * 12
                + (df['session_date'].dt.month - first_session.dt.month)
            ),
        })

        cohort_sizes = activity.groupby('cohort_month')['user_id'].nunique().rename('cohort_size')
        retention = (activity.groupby(['cohort_month', 'months_since_signup'])['user_id']
                     .nunique()
                     .rename('retained_users')
                     .reset_index())
        retention = retention.merge(cohort_sizes.reset_index(), on='cohort_month', how='left')
        retention['retention_rate_pct'] = (
            retention['retained_users'] / retention['cohort_size'] * 100
        ).round(1)

        retention = retention.sort_values(['cohort_month', 'months_since_signup']).reset_index(drop=True)
        logger.debug("Computed retention for %d cohorts", len(cohort_sizes))
        return retention[COHORT_COLUMNS]

    def retention_matrix(self) -> pd.DataFrame:
        """Cohort x months-since-signup pivot of retention_rate_pct."""
        retention = self.cohort_retention()
        if retention.empty:
            return pd.DataFrame(dtype=float)
        return retention.pivot_table(
            index='cohort_month',
            columns='months_since_signup',
            values='retention_rate_pct',
            fill_value=0.0,
        )

    def downgrade_detection(self,
                            limit=config.DEFAULT_DOWNGRADE_LIMIT,
                            tier_resolution=config.DEFAULT_TIER_RESOLUTION) -> pd.DataFrame:
        """
        Users whose tier rank and watch time both fell from one month to the next.

        Each user-month is reduced to one tier. With ``tier_resolution`` set
        to "lexical" that is the largest tier name as a string, the way
        MAX(subscription_tier) picks it: "standard" wins over "premium" in a
        month containing both. "rank" picks the highest-ranked tier instead.

        Months are compared with the user's previous active month; missing
        months are not filled in. Rows are ordered by the largest drop in
        watch time first.
        """
        if limit < 0:
            raise InvalidParameterError(f"limit must be >= 0, got {limit}")
        if tier_resolution not in config.TIER_RESOLUTIONS:
            raise InvalidParameterError(
                f"tier_resolution must be one of {', '.join(config.TIER_RESOLUTIONS)}, got {tier_resolution!r}"
            )

        if self._sessions.empty:
            return pd.DataFrame(columns=DOWNGRADE_COLUMNS)

        df = self._sessions.assign(month=_months(self._sessions['session_date']))
        grouped = df.groupby(['user_id', 'month'], sort=True)

        monthly = grouped.agg(
            current_minutes=('minutes_watched', 'sum'),
            session_count=('minutes_watched', 'size'),
        )
        if tier_resolution == 'lexical':
            monthly['new_tier'] = grouped['subscription_tier'].max()
        else:
            ranks = df['subscription_tier'].map(config.TIER_RANK)
            monthly['new_tier'] = ranks.groupby([df['user_id'], df['month']]).max().map(config.RANK_TIER)
        monthly = monthly.reset_index()

        by_user = monthly.groupby('user_id')
        monthly['previous_tier'] = by_user['new_tier'].shift(1)
        monthly['previous_minutes'] = by_user['current_minutes'].shift(1)

        previous_rank = monthly['previous_tier'].map(config.TIER_RANK)
        current_rank = monthly['new_tier'].map(config.TIER_RANK)
        downgraded = (current_rank < previous_rank) & (monthly['current_minutes'] < monthly['previous_minutes'])

        events = monthly[downgraded].copy()
        events['previous_minutes'] = events['previous_minutes'].astype('int64')
        events['watch_time_change_pct'] = (
            (events['current_minutes'] - events['previous_minutes']) / events['previous_minutes'] * 100
        ).astype(float).round(1)
        events['month'] = events['month'].astype(str)

        events = (events.sort_values(['watch_time_change_pct', 'user_id', 'month'], kind='mergesort')
                  .head(limit)
                  .reset_index(drop=True))
        logger.debug("Found %d downgrade events, returning %d", int(downgraded.sum()), len(events))
        return events[DOWNGRADE_COLUMNS]

    def run_all(self,
                year=None,
                window_days=config.DEFAULT_WINDOW_DAYS,
                as_of=None,
                top_n=config.DEFAULT_TOP_N,
                completion_threshold=config.DEFAULT_COMPLETION_THRESHOLD,
                limit=config.DEFAULT_DOWNGRADE_LIMIT,
                tier_resolution=config.DEFAULT_TIER_RESOLUTION) -> dict:
        """Compute every report, keyed by report name."""
        reports = {
            'monthly_totals': self.monthly_totals(year),
            'mom_growth': self.month_over_month_growth(year),
            'top_engaged_users': self.top_engaged_users(window_days, as_of, top_n),
            'content_performance': self.content_performance(completion_threshold),
            'cohort_retention': self.cohort_retention(),
            'retention_matrix': self.retention_matrix(),
            'downgrades': self.downgrade_detection(limit, tier_resolution),
        }
        logger.info("Computed %d reports over %d sessions", len(reports), len(self._sessions))
        return reports
