"""StreamFlix session analytics: reporting tables and charts over viewing sessions."""
import logging

from streamflix.data import generate_sessions, load_sessions, validate_sessions
from streamflix.errors import InvalidParameterError, MalformedInputError, StreamflixError
from streamflix.pipeline import AnalyticsPipeline

__version__ = '1.0.0'

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    'AnalyticsPipeline',
    'InvalidParameterError',
    'MalformedInputError',
    'StreamflixError',
    'generate_sessions',
    'load_sessions',
    'validate_sessions',
]
