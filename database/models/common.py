"""Column types and row guards shared by every model."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Callable, Optional, Type

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, Enum as SQLEnum, event
from sqlalchemy.orm.attributes import get_history
from sqlalchemy.types import TypeDecorator

from core.exceptions import LedgerImmutableError

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer(), "sqlite")

# Fixed-point money: 4 fractional digits for balances and ledger amounts
MONEY_SCALE = 4
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_SCALE)
Money = Numeric(19, MONEY_SCALE, asdecimal=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back in UTC, SQLite included."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def enum_column(enum_cls: Type[PyEnum]) -> SQLEnum:
    """Non-native enum stored by value (``"job_seeker"``, not ``"JOB_SEEKER"``)."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=50,
        values_callable=lambda members: [member.value for member in members],
    )


def append_only(is_frozen: Callable[[Any], bool] = lambda target: True):
    """
    Class decorator rejecting flushes that modify or delete frozen rows.

    ``is_frozen`` receives the instance as last loaded from the database
    (attribute values before pending changes) and decides whether it may
    still change.
    """

    def decorator(model_class):
        @event.listens_for(model_class, "before_update")
        def reject_update(mapper, connection, target):
            if is_frozen(_as_loaded(target)):
                raise LedgerImmutableError(
                    f"{model_class.__name__} #{target.id} cannot be modified"
                )

        @event.listens_for(model_class, "before_delete")
        def reject_delete(mapper, connection, target):
            if is_frozen(_as_loaded(target)):
                raise LedgerImmutableError(
                    f"{model_class.__name__} #{target.id} cannot be deleted"
                )

        return model_class

    return decorator


class _LoadedState:
    """Read-only view of an instance's committed attribute values."""

    def __init__(self, target: Any):
        self._target = target

    def __getattr__(self, name: str) -> Any:
        history = get_history(self._target, name)
        if history.deleted:
            return history.deleted[0]
        if history.unchanged:
            return history.unchanged[0]
        return getattr(self._target, name)


def _as_loaded(target: Any) -> _LoadedState:
    return _LoadedState(target)
