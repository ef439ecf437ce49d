"""Tracking number ("radicado") generation."""

import random
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from licencias.core.exceptions import ConflictError
from licencias.core.retry import RetryPolicy
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)


def radicado_pattern(prefix: str) -> "re.Pattern[str]":
    """Pattern matching radicados issued with ``prefix``."""
    return re.compile(rf"^{re.escape(prefix.upper())}-\d{{4}}-\d{{9}}$")


class RadicadoGenerator:
    """Builds candidates of the form ``LIC-{year}-{clock digits}{random digits}``.

    Six digits come from the millisecond clock and three are random, so two
    requests created in the same millisecond rarely collide. Collisions are
    resolved by ``issue`` through a retry policy.
    """

    def __init__(
        self,
        prefix: str = "LIC",
        max_attempts: int = 5,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.prefix = prefix.strip().upper()
        self.pattern = radicado_pattern(self.prefix)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.rng = rng or random.SystemRandom()
        self.retry_policy = RetryPolicy(
            max_attempts=max_attempts,
            base_delay=0,
            retry_on=(ConflictError,),
        )

    def candidate(self) -> str:
        now = self.clock()
        millis = int(now.timestamp() * 1000)
        clock_part = str(millis)[-6:].zfill(6)
        random_part = f"{self.rng.randint(0, 999):03d}"
        return f"{self.prefix}-{now.year}-{clock_part}{random_part}"

    async def issue(self, claim: Callable[[str], Awaitable]) -> object:
        """Call ``claim`` with fresh candidates until one is accepted.

        ``claim`` must raise ``ConflictError`` when the candidate is taken.

        Raises:
            ConflictError: If every attempt collided
        """

        async def attempt():
            radicado = self.candidate()
            return await claim(radicado)

        try:
            return await self.retry_policy.run(attempt, description="radicado assignment")
        except ConflictError as e:
            LOGGER.error(f"Radicado assignment exhausted {self.retry_policy.max_attempts} attempts")
            raise ConflictError(
                "Could not assign a unique tracking number", original_error=e
            ) from e
