from __future__ import annotations
from contextlib import contextmanager


@contextmanager
def unit_of_work(session):
    """Commit everything added inside the block, or roll all of it back on error.

    Mutations and their audit entries share one block, so neither persists alone.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise


__all__ = ['unit_of_work']
