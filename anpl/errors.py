"""
Domain error taxonomy and the operation boundary.

Internal helpers raise DomainError subclasses. Public service operations are
wrapped with @domain_operation and hand back a Result instead of raising:

    bundle, err = await create_bundle(session, owner_id, request)
    if err:
        ...  # err.kind / err.message

The wrapper is also the top-level catch for anything unexpected: the error is
logged with full context and replaced by a generic INTERNAL error.
"""
from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    NOT_FOUND                   = "NOT_FOUND"
    VALIDATION                  = "VALIDATION"
    ALREADY_EXISTS              = "ALREADY_EXISTS"
    ALREADY_TAKEN               = "ALREADY_TAKEN"
    AMOUNT_MISMATCH             = "AMOUNT_MISMATCH"
    PAYMENT_VERIFICATION_FAILED = "PAYMENT_VERIFICATION_FAILED"
    INTERNAL                    = "INTERNAL"


class DomainError(Exception):
    """
    Base class for every expected failure.

    Attributes
    ----------
    kind     : ErrorKind category reported to the caller
    message  : human-readable, participant-labelled text
    rollback : whether the enclosing transaction must be discarded
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    rollback: bool = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}: {self.message!r})"


class NotFound(DomainError):
    kind = ErrorKind.NOT_FOUND


class ValidationFailed(DomainError):
    kind = ErrorKind.VALIDATION


class MissingDocuments(ValidationFailed):
    pass


class InvalidRelation(ValidationFailed):
    pass


class InvalidEvent(ValidationFailed):
    pass


class AlreadyExists(DomainError):
    kind = ErrorKind.ALREADY_EXISTS


class AlreadyRegistered(AlreadyExists):
    pass


class AlreadyTaken(DomainError):
    kind = ErrorKind.ALREADY_TAKEN


class AmountMismatch(DomainError):
    kind = ErrorKind.AMOUNT_MISMATCH


class PaymentVerificationFailed(DomainError):
    kind = ErrorKind.PAYMENT_VERIFICATION_FAILED

    def __init__(self, message: str, rollback: bool = False) -> None:
        super().__init__(message)
        # the compensating FAILED transition has to survive the error
        self.rollback = rollback


class InternalError(DomainError):
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(message)


class Result(NamedTuple):
    """Outcome of a public operation: exactly one of value / error is set."""
    value: Any
    error: Optional[DomainError]

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None


def domain_operation(
    func: Callable[..., Awaitable[Any]],
) -> Callable[..., Awaitable[Result]]:
    """
    Turn a raising coroutine into one that returns a Result.
    The wrapped function must take the AsyncSession as its first argument.
    """

    @functools.wraps(func)
    async def wrapper(session: AsyncSession, *args: Any, **kwargs: Any) -> Result:
        try:
            value = await func(session, *args, **kwargs)
        except DomainError as e:
            if e.rollback:
                await session.rollback()
            logger.info("%s rejected: %r", func.__name__, e)
            return Result(None, e)
        except Exception:
            await session.rollback()
            logger.exception("Unexpected error in %s", func.__name__)
            return Result(None, InternalError())
        return Result(value, None)

    return wrapper
