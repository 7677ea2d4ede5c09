"""Constants shared by the StreamFlix session analytics."""

# Session table schema
SESSION_COLUMNS = (
    'user_id',
    'session_date',
    'minutes_watched',
    'content_type',
    'device_type',
    'subscription_tier',
)

CONTENT_TYPES = ('movie', 'tv_show', 'documentary')
DEVICE_TYPES = ('mobile', 'web', 'tv')
SUBSCRIPTION_TIERS = ('basic', 'standard', 'premium')

TIER_RANK = {'basic': 1, 'standard': 2, 'premium': 3}
RANK_TIER = {rank: tier for tier, rank in TIER_RANK.items()}

# Engagement score = minutes * 0.5 + sessions * 10 + content variety * 20
MINUTES_WEIGHT = 0.5
SESSION_WEIGHT = 10
VARIETY_WEIGHT = 20

DEFAULT_WINDOW_DAYS = 30
DEFAULT_TOP_N = 10
DEFAULT_COMPLETION_THRESHOLD = 40
DEFAULT_DOWNGRADE_LIMIT = 50

HIGH_WATCH_LOW_COMPLETION = 'HIGH WATCH / LOW COMPLETION'
NORMAL = 'NORMAL'

# "lexical" mirrors MAX(subscription_tier) on the raw strings
TIER_RESOLUTIONS = ('lexical', 'rank')
DEFAULT_TIER_RESOLUTION = 'lexical'

# Synthetic dataset
N_SESSIONS = 80000
N_USERS = 5000
START_DATE = '2024-01-01'
END_DATE = '2024-12-31'
RANDOM_SEED = 42
