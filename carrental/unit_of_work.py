import logging

from sqlalchemy.exc import SQLAlchemyError

from .errors import PersistenceFailure
from .extensions import db

logger = logging.getLogger(__name__)


class UnitOfWork:
    """One database transaction around one public rental operation.

    Used as a context manager.  Leaving the block normally commits; any
    exception rolls the whole transaction back.  Storage errors are re-raised
    as :class:`PersistenceFailure`, everything else propagates unchanged.
    Callbacks registered with :meth:`after_commit` run only once the commit
    has succeeded.
    """

    def __init__(self, name: str, session=None):
        self.name = name
        self.session = session if session is not None else db.session
        self._after_commit = []

    def after_commit(self, callback, *args, **kwargs):
        self._after_commit.append((callback, args, kwargs))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            try:
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.exception("Commit failed for %s", self.name)
                raise PersistenceFailure(f"{self.name} could not be saved") from e
            # The operation is committed at this point; a failing audit sink or
            # notification receiver must not turn it into an error.
            for callback, args, kwargs in self._after_commit:
                try:
                    callback(*args, **kwargs)
                except Exception:
                    logger.exception("After-commit hook %r failed for %s", callback, self.name)
            return False

        self.session.rollback()
        if issubclass(exc_type, SQLAlchemyError):
            logger.error("Storage error during %s, rolled back", self.name,
                         exc_info=(exc_type, exc, tb))
            raise PersistenceFailure(f"{self.name} could not be saved") from exc
        logger.debug("%s rolled back: %s", self.name, exc)
        return False
