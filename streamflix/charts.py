"""
Charts for the StreamFlix reports.

Every builder takes one report table and returns a matplotlib Figure; none of
them call ``plt.show()``, so the notebook decides whether to display or save.
"""
import logging
from pathlib import Path

import matplotlib.pyplot as plt
import seaborn as sns

from streamflix import config

logger = logging.getLogger(__name__)

TIER_COLORS = {'basic': '#9e9e9e', 'standard': '#1f77b4', 'premium': '#d62728'}


def _style(ax, title, xlabel, ylabel):
    ax.set_title(title, fontsize=16, pad=20)
    ax.set_xlabel(xlabel, fontsize=12)
    ax.set_ylabel(ylabel, fontsize=12)


def _no_data(fig, ax, title):
    ax.text(0.5, 0.5, 'No data', ha='center', va='center', fontsize=14, transform=ax.transAxes)
    ax.set_title(title, fontsize=16, pad=20)
    ax.set_axis_off()
    return fig


def plot_monthly_minutes(monthly_totals):
    """Chart 1: total minutes watched per month."""
    fig, ax = plt.subplots(figsize=(14, 6))
    title = 'Total Minutes Watched by Month'
    if monthly_totals.empty:
        return _no_data(fig, ax, title)

    ax.plot(monthly_totals['month'], monthly_totals['total_minutes'], marker='o', linewidth=2)
    _style(ax, title, 'Month', 'Minutes Watched')
    ax.grid(True, alpha=0.3)
    ax.tick_params(axis='x', rotation=45)
    fig.tight_layout()
    return fig


def plot_mom_growth(mom_growth):
    """Chart 2: month-over-month growth, green for growth and red for decline."""
    fig, ax = plt.subplots(figsize=(14, 6))
    title = 'Month-over-Month Growth in Minutes Watched'
    if mom_growth.empty:
        return _no_data(fig, ax, title)

    rates = mom_growth['mom_growth_rate_pct'].fillna(0)
    colors = ['#2ca02c' if rate >= 0 else '#d62728' for rate in rates]
    ax.bar(mom_growth['month'], rates, color=colors, edgecolor='black')
    ax.axhline(0, color='black', linewidth=0.8)
    _style(ax, title, 'Month', 'Growth (%)')
    ax.grid(True, axis='y', alpha=0.3)
    ax.tick_params(axis='x', rotation=45)
    fig.tight_layout()
    return fig


def plot_top_users(top_users):
    """Chart 3: engagement score of the most engaged users."""
    fig, ax = plt.subplots(figsize=(12, 6))
    title = 'Top Engaged Users (Engagement Score)'
    if top_users.empty:
        return _no_data(fig, ax, title)

    ranked = top_users.iloc[::-1]
    ax.barh(ranked['user_id'], ranked['engagement_score'], color='#1f77b4', edgecolor='black')
    _style(ax, title, 'Engagement Score', 'User')
    ax.grid(True, axis='x', alpha=0.3)
    fig.tight_layout()
    return fig


def plot_engagement_breakdown(top_users):
    """Chart 4: how minutes, sessions and variety add up to each score."""
    fig, ax = plt.subplots(figsize=(12, 6))
    title = 'Engagement Score Breakdown'
    if top_users.empty:
        return _no_data(fig, ax, title)

    ranked = top_users.iloc[::-1]
    minutes = ranked['total_minutes'] * config.MINUTES_WEIGHT
    sessions = ranked['session_count'] * config.SESSION_WEIGHT
    variety = ranked['content_variety'] * config.VARIETY_WEIGHT

    ax.barh(ranked['user_id'], minutes, label='Minutes x 0.5')
    ax.barh(ranked['user_id'], sessions, left=minutes, label='Sessions x 10')
    ax.barh(ranked['user_id'], variety, left=minutes + sessions, label='Content variety x 20')
    _style(ax, title, 'Score Contribution', 'User')
    ax.legend(loc='lower right')
    ax.grid(True, axis='x', alpha=0.3)
    fig.tight_layout()
    return fig


def plot_content_watch_time(content):
    """Chart 5: average watch time per content type against the overall average."""
    fig, ax = plt.subplots(figsize=(10, 6))
    title = 'Average Watch Time by Content Type'
    if content.empty:
        return _no_data(fig, ax, title)

    colors = ['#ff7f0e' if c == config.HIGH_WATCH_LOW_COMPLETION else '#1f77b4' for c in content['category']]
    ax.bar(content['content_type'], content['avg_watch_time'], color=colors, edgecolor='black')
    ax.axhline(content['overall_avg_watch'].iloc[0], color='gray', linestyle='--', label='Overall average')
    _style(ax, title, 'Content Type', 'Average Minutes per Session')
    ax.legend()
    ax.grid(True, axis='y', alpha=0.3)
    fig.tight_layout()
    return fig


def plot_content_completion(content):
    """Chart 6: completion rate per content type against the overall rate."""
    fig, ax = plt.subplots(figsize=(10, 6))
    title = 'Completion Rate by Content Type'
    if content.empty:
        return _no_data(fig, ax, title)

    colors = ['#ff7f0e' if c == config.HIGH_WATCH_LOW_COMPLETION else '#2ca02c' for c in content['category']]
    ax.bar(content['content_type'], content['completion_rate_pct'], color=colors, edgecolor='black')
    ax.axhline(content['overall_avg_completion_pct'].iloc[0], color='gray', linestyle='--',
               label='Overall completion')
    _style(ax, title, 'Content Type', 'Completion Rate (%)')
    ax.legend()
    ax.grid(True, axis='y', alpha=0.3)
    fig.tight_layout()
    return fig


def plot_retention_heatmap(retention_matrix):
    """Chart 7: cohort retention heatmap."""
    fig, ax = plt.subplots(figsize=(14, 8))
    title = 'Cohort Retention Heatmap (% of Cohort Active)'
    if retention_matrix.empty:
        return _no_data(fig, ax, title)

    sns.heatmap(retention_matrix, annot=True, fmt='.1f', cmap='YlOrRd',
                linewidths=0.5, linecolor='gray', ax=ax)
    _style(ax, title, 'Months Since First Session', 'Cohort Month')
    fig.tight_layout()
    return fig


def plot_retention_curves(cohort_retention, max_cohorts=6):
    """Chart 8: retention curves for the earliest cohorts."""
    fig, ax = plt.subplots(figsize=(14, 8))
    title = 'Retention Curves by Cohort'
    if cohort_retention.empty:
        return _no_data(fig, ax, title)

    cohorts = sorted(cohort_retention['cohort_month'].unique())[:max_cohorts]
    for cohort in cohorts:
        rows = cohort_retention[cohort_retention['cohort_month'] == cohort]
        ax.plot(rows['months_since_signup'], rows['retention_rate_pct'], marker='o', linewidth=2, label=cohort)

    _style(ax, title, 'Months Since First Session', 'Retention (%)')
    ax.grid(True, alpha=0.3)
    ax.legend(title='Cohort', bbox_to_anchor=(1.05, 1), loc='upper left')
    fig.tight_layout()
    return fig


def plot_downgrade_transitions(downgrades):
    """Chart 9: number of downgrade events per tier transition."""
    fig, ax = plt.subplots(figsize=(10, 6))
    title = 'Downgrades by Tier Transition'
    if downgrades.empty:
        return _no_data(fig, ax, title)

    transitions = (downgrades['previous_tier'] + ' -> ' + downgrades['new_tier']).value_counts().sort_index()
    ax.bar(transitions.index, transitions.values, color='#9467bd', edgecolor='black')
    _style(ax, title, 'Transition', 'Users')
    ax.grid(True, axis='y', alpha=0.3)
    fig.tight_layout()
    return fig


def plot_downgrade_minutes(downgrades):
    """Chart 10: minutes before and after each downgrade."""
    fig, ax = plt.subplots(figsize=(12, 6))
    title = 'Watch Time Before vs After Downgrade'
    if downgrades.empty:
        return _no_data(fig, ax, title)

    colors = [TIER_COLORS[tier] for tier in downgrades['previous_tier']]
    ax.scatter(downgrades['previous_minutes'], downgrades['current_minutes'],
               c=colors, alpha=0.6, edgecolors='black')
    upper = downgrades['previous_minutes'].max()
    ax.plot([0, upper], [0, upper], color='gray', linestyle='--', linewidth=1)
    _style(ax, title, 'Minutes in Previous Month', 'Minutes in Downgrade Month')
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def build_all(reports):
    """Build all ten charts from the output of ``AnalyticsPipeline.run_all``."""
    return {
        'monthly_minutes': plot_monthly_minutes(reports['monthly_totals']),
        'mom_growth': plot_mom_growth(reports['mom_growth']),
        'top_users': plot_top_users(reports['top_engaged_users']),
        'engagement_breakdown': plot_engagement_breakdown(reports['top_engaged_users']),
        'content_watch_time': plot_content_watch_time(reports['content_performance']),
        'content_completion': plot_content_completion(reports['content_performance']),
        'retention_heatmap': plot_retention_heatmap(reports['retention_matrix']),
        'retention_curves': plot_retention_curves(reports['cohort_retention']),
        'downgrade_transitions': plot_downgrade_transitions(reports['downgrades']),
        'downgrade_minutes': plot_downgrade_minutes(reports['downgrades']),
    }


def render_all(reports, output_dir):
    """Save all ten charts as PNG files and return their paths."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for index, (name, fig) in enumerate(build_all(reports).items(), start=1):
        path = output_dir / f"{index:02d}_{name}.png"
        fig.savefig(path, dpi=100)
        plt.close(fig)
        paths.append(path)
        logger.info("Saved chart %s", path)
    return paths
