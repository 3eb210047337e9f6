"""Daily fine rate configuration."""
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.config import settings
from booksmart.core.exceptions import ValidationError
from booksmart.core.logging import get_logger
from booksmart.models.system_config import ConfigKey, SystemConfig

logger = get_logger("fine_config")

FINE_DESCRIPTION = "Daily fine amount for overdue books"


class FineConfigService:
    """Reads and writes the process-wide daily fine rate.

    The rate is read at calculation time, so a change applies to every fine
    computed afterwards, including those of books already overdue.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_config(self) -> Optional[SystemConfig]:
        """Get the stored fine configuration row, if an admin ever set one."""
        result = await self.db.execute(
            select(SystemConfig).where(SystemConfig.key == ConfigKey.DAILY_FINE_AMOUNT)
        )
        return result.scalar_one_or_none()

    async def get_daily_rate(self) -> Decimal:
        """Current daily fine, falling back to the configured default."""
        config = await self.get_config()
        if config is None:
            return settings.default_daily_fine
        try:
            return Decimal(config.value)
        except InvalidOperation:
            logger.error(
                f"Stored daily fine {config.value!r} is not a number, "
                f"using default {settings.default_daily_fine}"
            )
            return settings.default_daily_fine

    async def set_daily_rate(
        self,
        amount: Union[Decimal, str],
        updated_by: str,
    ) -> SystemConfig:
        """Set the daily fine rate and bump the config version."""
        try:
            rate = Decimal(str(amount)).quantize(Decimal("0.01"))
        except InvalidOperation:
            raise ValidationError("Daily fine amount must be a number", field="daily_fine_amount")
        if rate < 0:
            raise ValidationError("Daily fine amount cannot be negative", field="daily_fine_amount")

        config = await self.get_config()
        if config:
            previous = config.value
            config.value = str(rate)
            config.version += 1
            config.updated_by = updated_by
        else:
            previous = None
            config = SystemConfig(
                key=ConfigKey.DAILY_FINE_AMOUNT,
                value=str(rate),
                description=FINE_DESCRIPTION,
                version=1,
                updated_by=updated_by,
            )
            self.db.add(config)

        await self.db.flush()
        await self.db.refresh(config)
        logger.info(
            f"Daily fine changed {previous or settings.default_daily_fine} -> {rate} "
            f"by {updated_by} (version {config.version})"
        )
        return config
