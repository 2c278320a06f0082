# shopcore/repos/base.py
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from shopcore.domain.errors import ConflictError, LockTimeout
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


class BaseRepo:
    def __init__(self, db: Session):
        self.db = db

    def _add(self, obj):
        self.db.add(obj)
        try:
            self.db.flush()
        except IntegrityError as e:
            logger.warning(f"Integrity error while writing {type(obj).__name__}: {e.orig}")
            raise ConflictError(f"{type(obj).__name__} conflicts with an existing row") from e
        except OperationalError as e:
            logger.warning(f"Write of {type(obj).__name__} timed out waiting for a lock: {e.orig}")
            raise LockTimeout(f"Could not write {type(obj).__name__} in time") from e
        return obj

    def _delete(self, objs) -> None:
        for obj in objs:
            self.db.delete(obj)
        self._flush()

    def _flush(self) -> None:
        try:
            self.db.flush()
        except OperationalError as e:
            logger.warning(f"Flush timed out waiting for a lock: {e.orig}")
            raise LockTimeout("Could not write changes in time") from e

    def _fetch_one(self, stmt, lock: bool = False):
        if lock:
            # reload the row even if an older copy sits in the identity map
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._execute(stmt).scalars().first()

    def _expire_cached(self, model, pk, attrs: list[str]) -> None:
        # bulk UPDATEs bypass the identity map; drop the stale values
        obj = self.db.identity_map.get(identity_key(model, pk))
        if obj is not None:
            self.db.expire(obj, attrs)

    def _execute(self, stmt):
        # also covers autoflush of pending changes before the statement runs
        try:
            return self.db.execute(stmt)
        except OperationalError as e:
            # lock_timeout / statement_timeout / sqlite busy timeout
            logger.warning(f"Statement timed out waiting for a lock: {e.orig}")
            raise LockTimeout("Could not access the requested rows in time") from e
