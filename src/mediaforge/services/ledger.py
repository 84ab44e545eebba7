"""Credit ledger: atomic reserve, refund and grant of user credits.

The ledger works inside the caller's UnitOfWork so a reservation can share a
transaction with job creation and a refund with job finalization. Every
balance change is a single conditional UPDATE issued by UserRepository.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog

from mediaforge.services.exceptions import UserNotFoundError
from mediaforge.uow import UnitOfWork

logger = structlog.get_logger()


@dataclass
class ReserveResult:
    """Outcome of a reservation attempt.

    ``available`` is the balance observed when the reservation was rejected,
    or the new balance when it succeeded.
    """

    ok: bool
    new_balance: int | None
    available: int


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"Credit amount must be non-negative, got {amount}")


class CreditLedger:
    """Reserve/refund/grant operations bound to one UnitOfWork."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def reserve(self, user_id: UUID, amount: int) -> ReserveResult:
        """Debit ``amount`` only if the balance covers it.

        A rejected reservation has no side effects.

        Raises:
            ValueError: If amount is negative
            UserNotFoundError: If the user does not exist
        """
        _check_amount(amount)

        if amount == 0:
            balance = await self.uow.users.get_balance(user_id)
            if balance is None:
                raise UserNotFoundError(f"User not found: {user_id}")
            return ReserveResult(ok=True, new_balance=balance, available=balance)

        new_balance = await self.uow.users.deduct_credits_if_sufficient(user_id, amount)
        if new_balance is not None:
            logger.info("ledger.reserved", user_id=str(user_id), amount=amount, balance=new_balance)
            return ReserveResult(ok=True, new_balance=new_balance, available=new_balance)

        available = await self.uow.users.get_balance(user_id)
        if available is None:
            raise UserNotFoundError(f"User not found: {user_id}")

        logger.info(
            "ledger.reserve.rejected",
            user_id=str(user_id),
            required=amount,
            available=available,
        )
        return ReserveResult(ok=False, new_balance=None, available=available)

    async def refund(self, user_id: UUID, amount: int) -> int:
        """Return reserved credits to a user.

        Returns:
            New balance

        Raises:
            ValueError: If amount is negative
            UserNotFoundError: If the user does not exist
        """
        new_balance = await self._increment(user_id, amount)
        logger.info("ledger.refunded", user_id=str(user_id), amount=amount, balance=new_balance)
        return new_balance

    async def grant(self, user_id: UUID, amount: int, reason: str = "grant") -> int:
        """Add credits from outside the job lifecycle (top-up, renewal).

        Returns:
            New balance
        """
        new_balance = await self._increment(user_id, amount)
        logger.info(
            "ledger.granted",
            user_id=str(user_id),
            amount=amount,
            reason=reason,
            balance=new_balance,
        )
        return new_balance

    async def _increment(self, user_id: UUID, amount: int) -> int:
        _check_amount(amount)
        if amount == 0:
            balance = await self.uow.users.get_balance(user_id)
        else:
            balance = await self.uow.users.add_credits(user_id, amount)
        if balance is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        return balance
