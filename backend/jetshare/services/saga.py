"""
Saga Helper

Runs a sequence of store / provider writes that cannot share one database
transaction. Each step may register a compensation; when a later step fails,
compensations of the completed steps run in reverse order and the original
error is re-raised.

Usage:
    async with Saga("initiate_payment") as saga:
        handle = await saga.step(
            "create_provider_payment",
            lambda: gateway.create_payment(...),
            compensate=lambda handle: gateway.cancel_payment(handle.provider_reference),
        )
        await saga.step("insert_transaction", lambda: insert_row(handle))
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[Any]]


class Saga:
    """Ordered steps with reverse-order compensation on failure."""

    def __init__(self, name: str):
        self.name = name
        self._completed: List[Tuple[str, Optional[Compensation], Any]] = []

    async def step(
        self,
        step_name: str,
        action: Action,
        compensate: Optional[Compensation] = None
    ) -> Any:
        """
        Execute one step and remember how to undo it.

        Args:
            step_name: Name used in logs
            action: Coroutine factory performing the step
            compensate: Coroutine factory receiving the step result, undoing it

        Returns:
            Result of the action
        """
        result = await action()
        self._completed.append((step_name, compensate, result))
        logger.debug(f"Saga {self.name}: step '{step_name}' done")
        return result

    async def compensate(self) -> None:
        """Undo completed steps in reverse order, logging compensation failures."""
        while self._completed:
            step_name, compensation, result = self._completed.pop()
            if compensation is None:
                continue
            try:
                await compensation(result)
                logger.info(f"Saga {self.name}: compensated step '{step_name}'")
            except Exception:
                logger.error(
                    f"Saga {self.name}: compensation for step '{step_name}' failed",
                    exc_info=True
                )

    async def __aenter__(self) -> "Saga":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            logger.warning(f"Saga {self.name} failed: {exc_type.__name__}: {exc}")
            await self.compensate()
        return False
