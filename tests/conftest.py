import matplotlib

matplotlib.use('Agg')

import pandas as pd
import pytest

from streamflix import AnalyticsPipeline, generate_sessions
from streamflix.config import SESSION_COLUMNS


def make_sessions(rows):
    """Build a session frame from (user_id, date, minutes, content, device, tier) tuples."""
    return pd.DataFrame(rows, columns=list(SESSION_COLUMNS))


@pytest.fixture
def session_rows():
    return make_sessions


@pytest.fixture(scope='session')
def synthetic_sessions():
    return generate_sessions(n_sessions=4000, n_users=250, seed=7)


@pytest.fixture(scope='session')
def synthetic_pipeline(synthetic_sessions):
    return AnalyticsPipeline(synthetic_sessions)


@pytest.fixture
def empty_pipeline():
    return AnalyticsPipeline(pd.DataFrame(columns=list(SESSION_COLUMNS)))
