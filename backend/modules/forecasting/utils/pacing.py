# backend/modules/forecasting/utils/pacing.py

import asyncio
from dataclasses import dataclass


@dataclass(frozen=True)
class ThrottlePolicy:
    """
    Fixed delay inserted between the items of a sequential batch.

    Keeps scheduled loops from bursting the data store; a zero delay turns
    pacing off.
    """
    delay_seconds: float = 0.0

    async def pause(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)


NO_THROTTLE = ThrottlePolicy(0.0)
