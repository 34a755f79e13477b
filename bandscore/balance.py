"""Prepaid balance used to pay for exam attempts."""
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bandscore.errors import BadRequest, Forbidden, NotFound
from bandscore.models import User

logger = logging.getLogger(__name__)


class Balance(ABC):
    """Per-user balance consulted and charged by the entitlement gate."""

    cost: Decimal
    currency: str = ""

    @abstractmethod
    async def lock(self, user_id: str) -> None:
        """Hold the user's balance for the rest of the transaction. Raises NotFound for unknown users."""

    @abstractmethod
    async def has_enough(self, user_id: str) -> bool:
        pass

    @abstractmethod
    async def deduct(self, user_id: str) -> None:
        """Charge one exam. Raises NotFound for unknown users and Forbidden when short."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> Decimal:
        pass


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


class UserBalance(Balance):
    """Balance stored on the users table.

    ``lock``, ``deduct`` and ``credit`` lock the user row and only flush; the caller owns
    the transaction, so a charge commits or rolls back together with whatever
    it pays for.
    """

    def __init__(
        self,
        db: AsyncSession,
        cost: Union[int, Decimal],
        currency: str = "UZS",
        min_top_up: Union[int, Decimal] = 0,
    ):
        self.db = db
        self.cost = _as_decimal(cost)
        self.currency = currency
        self.min_top_up = _as_decimal(min_top_up)

    async def _get_user(self, user_id: str, for_update: bool = False) -> Optional[User]:
        query = select(User).where(User.id == user_id).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def lock(self, user_id: str) -> None:
        user = await self._get_user(user_id, for_update=True)
        if user is None:
            raise NotFound("User not found")

    async def get_balance(self, user_id: str) -> Decimal:
        user = await self._get_user(user_id)
        if user is None:
            return Decimal("0")
        return _as_decimal(user.balance)

    async def has_enough(self, user_id: str) -> bool:
        return await self.get_balance(user_id) >= self.cost

    async def deduct(self, user_id: str) -> None:
        user = await self._get_user(user_id, for_update=True)
        if user is None:
            raise NotFound("User not found")

        current = _as_decimal(user.balance)
        if current < self.cost:
            raise Forbidden(
                f"Insufficient balance. You need {self.cost} {self.currency} to take an exam. "
                f"Your current balance: {current} {self.currency}"
            )

        user.balance = current - self.cost
        await self.db.flush()
        logger.info(
            f"Charged {self.cost} {self.currency} to user {user_id}; balance now {user.balance}",
            extra={"user_id": user_id},
        )

    async def credit(self, user_id: str, amount: Union[int, float, Decimal]) -> Decimal:
        amount = _as_decimal(amount)
        if amount < self.min_top_up:
            raise BadRequest(f"Minimum top-up amount is {self.min_top_up} {self.currency}")

        user = await self._get_user(user_id, for_update=True)
        if user is None:
            raise NotFound("User not found")

        user.balance = _as_decimal(user.balance) + amount
        await self.db.flush()
        logger.info(
            f"Credited {amount} {self.currency} to user {user_id}; balance now {user.balance}",
            extra={"user_id": user_id},
        )
        return _as_decimal(user.balance)
