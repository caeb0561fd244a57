"""Points economy primitives shared by challenge and reward workflows."""

from .balance_store import BalanceSnapshot, BalanceStore  # noqa: F401
from .errors import (  # noqa: F401
    ConflictError,
    EconomyError,
    ExpiredError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    OutOfStockError,
    TransientStoreError,
    ValidationError,
)
from .events import DomainEvent, EventType  # noqa: F401
from .pagination import Page, PageMeta, normalize_page  # noqa: F401
from .state_machine import ATTEMPT_TRANSITIONS, REDEMPTION_TRANSITIONS, TransitionTable  # noqa: F401
from .transaction import unit_of_work  # noqa: F401
