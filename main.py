# %% [markdown]
# # StreamFlix Viewing Analytics
# ## Product Analyst Assessment - SQL Proficiency & Visualization
#
# **Technologies:** Python, SQL (SQLite), Data Visualization
# **Dataset:** Synthetic Streaming Session Data (80,000 sessions)
# **Reports:** MoM growth, top engaged users, content performance, cohort retention, downgrades

# %% [markdown]
# ## 1. DATA GENERATION & VALIDATION

# %%
import logging
import sqlite3

import pandas as pd
import matplotlib.pyplot as plt
from IPython.display import display, HTML

from streamflix import AnalyticsPipeline, generate_sessions
from streamflix import charts, config, queries

logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(message)s')

print(" Libraries imported successfully")

# %%
# Reports are computed as of the last day in the dataset
AS_OF = config.END_DATE
REPORT_YEAR = 2024

sessions = generate_sessions()
pipeline = AnalyticsPipeline(sessions)

print(f" Data Generated: {len(sessions):,} sessions, {sessions['user_id'].nunique():,} unique users")
display(sessions.head())

# %% [markdown]
# ## 2. REPORTS IN PYTHON

# %%
reports = pipeline.run_all(year=REPORT_YEAR, as_of=AS_OF)

print(" Month-over-Month Growth:")
display(reports['mom_growth'])

print(" Top 10 Engaged Users (last 30 days):")
display(reports['top_engaged_users'])

print(" Content Performance:")
display(reports['content_performance'])

# %%
print(" Cohort Retention:")
display(reports['cohort_retention'].head(15))

print(" Downgrades with Decreased Watch Time:")
display(reports['downgrades'].head(15))

# %% [markdown]
# ## 3. SQL DATABASE CREATION & QUERIES

# %%
# Create SQLite database in memory
conn = sqlite3.connect(':memory:')
queries.load_sessions_table(pipeline.sessions, conn)
print(" SQL Database created with sessions table")

# %%
sql_reports = queries.run_all_reports(conn, year=REPORT_YEAR, as_of=AS_OF)

for name, sql_result in sql_reports.items():
    python_result = reports[name]
    try:
        # SQLite and numpy can round exact halves one unit apart
        pd.testing.assert_frame_equal(sql_result, python_result, check_dtype=False,
                                      check_exact=False, rtol=0, atol=0.11)
        matches = True
    except AssertionError:
        matches = False
    print(f"   • {name}: {len(sql_result)} rows, {'matches' if matches else 'DIFFERS FROM'} the pandas report")

display(sql_reports['downgrades'].head(10))

# %% [markdown]
# ## 4. VISUALIZATIONS

# %%
figures = charts.build_all(reports)

# %%
# Visualization 1-2: Viewing volume and growth
display(figures['monthly_minutes'])
display(figures['mom_growth'])

# %%
# Visualization 3-4: Power users
display(figures['top_users'])
display(figures['engagement_breakdown'])

# %%
# Visualization 5-6: Content performance
display(figures['content_watch_time'])
display(figures['content_completion'])

# %%
# Visualization 7-8: Cohort retention
display(figures['retention_heatmap'])
display(figures['retention_curves'])

# %%
# Visualization 9-10: Downgrades
display(figures['downgrade_transitions'])
display(figures['downgrade_minutes'])
plt.close('all')

# %% [markdown]
# ## 5. BUSINESS INSIGHTS

# %%
mom = reports['mom_growth']
content = reports['content_performance']
retention = reports['cohort_retention']
downgrades = reports['downgrades']

best_month = mom.loc[mom['mom_growth_rate_pct'].idxmax()] if not mom.empty else None
flagged = content.loc[content['category'] == config.HIGH_WATCH_LOW_COMPLETION, 'content_type'].tolist()
month_3 = retention.loc[retention['months_since_signup'] == 3, 'retention_rate_pct']
avg_3mo_retention = month_3.mean() if not month_3.empty else float('nan')

insights_html = f"""
<div style="background-color:#f8f9fa; padding:20px; border-radius:10px; border-left:5px solid #007bff;">
<h3> KEY INSIGHTS</h3>

<h4> Viewing Volume:</h4>
<ul>
<li><b>Total Minutes Watched:</b> {reports['monthly_totals']['total_minutes'].sum():,}</li>
<li><b>Strongest Month:</b> {best_month['month'] if best_month is not None else 'n/a'}
    ({best_month['mom_growth_rate_pct'] if best_month is not None else 0:+.2f}% MoM)</li>
</ul>

<h4> Content:</h4>
<ul>
<li><b>High Watch / Low Completion:</b> {', '.join(flagged) if flagged else 'none'}</li>
</ul>

<h4> Retention & Churn Risk:</h4>
<ul>
<li><b>Average 3-Month Retention:</b> {avg_3mo_retention:.1f}%</li>
<li><b>Downgrades with Lower Watch Time (top {config.DEFAULT_DOWNGRADE_LIMIT}):</b> {len(downgrades)}</li>
</ul>
</div>
"""

display(HTML(insights_html))

# %% [markdown]
# ## 6. EXPORT FILES

# %%
for name in ('mom_growth', 'top_engaged_users', 'content_performance', 'cohort_retention', 'downgrades'):
    reports[name].to_csv(f'{name}.csv', index=False)

with open('streamflix_queries.sql', 'w') as f:
    f.write(queries.schema_ddl())
    for name, sql in queries.REPORT_QUERIES.items():
        f.write(f"\n-- {name}\n{sql}")

chart_paths = charts.render_all(reports, 'charts')

print(" Files exported:")
for name in ('mom_growth', 'top_engaged_users', 'content_performance', 'cohort_retention', 'downgrades'):
    print(f"   • {name}.csv")
print("   • streamflix_queries.sql")
print(f"   • charts/ ({len(chart_paths)} PNG files)")
