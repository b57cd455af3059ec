"""
Database utilities shared by the Django repositories.
"""

import functools
import logging

from django.db import DatabaseError, IntegrityError

from core.domain.exceptions import TransientProviderError

logger = logging.getLogger(__name__)


def store_call(func):
    """
    Translate record store outages into TransientProviderError.

    Integrity errors are left alone: repositories rely on them to
    detect uniqueness conflicts.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError:
            raise
        except DatabaseError as e:
            logger.error("Record store error in %s: %s", func.__qualname__, e, exc_info=True)
            raise TransientProviderError("Record store unavailable") from e

    return wrapper
