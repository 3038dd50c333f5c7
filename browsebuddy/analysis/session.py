"""Token-budgeted classifier session wrapper."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Optional, Protocol

from browsebuddy.errors import (
    BudgetExhaustionError,
    ClassificationError,
    InitializationError,
    is_budget_message,
)
from browsebuddy.types import TokenBudget

LOGGER = logging.getLogger("browsebuddy.analysis.session")

TRUNCATION_MARKER = "..."


class ClassifierHandle(Protocol):
    async def classify(self, text: str) -> str:
        ...

    async def destroy(self) -> None:
        ...


class ClassifierProvider(Protocol):
    async def create(self, system_prompt: str) -> ClassifierHandle:
        ...


class TextClassifierSession:
    """Owns one provider session at a time and renews it when the budget runs low.

    Concurrent callers of :meth:`ensure_ready` share a single in-flight
    initialization, so ``provider.create`` is never called twice at once.
    """

    def __init__(
        self,
        provider: ClassifierProvider,
        system_prompt: str,
        renew_threshold: float = 0.2,
        input_budget_fraction: float = 0.5,
        chars_per_token: int = 4,
        default_max_tokens: int = 6144,
    ) -> None:
        self.provider = provider
        self.system_prompt = system_prompt
        self.renew_threshold = renew_threshold
        self.input_budget_fraction = input_budget_fraction
        self.chars_per_token = chars_per_token
        self.default_max_tokens = default_max_tokens
        self._handle: Optional[ClassifierHandle] = None
        self._init_task: Optional[asyncio.Future] = None
        self.sessions_created = 0
        self.sessions_destroyed = 0

    @property
    def is_ready(self) -> bool:
        return self._handle is not None

    def budget(self) -> Optional[TokenBudget]:
        if self._handle is None:
            return None
        max_tokens = getattr(self._handle, "max_tokens", None) or self.default_max_tokens
        used = getattr(self._handle, "tokens_used", None) or 0
        left = getattr(self._handle, "tokens_left", None)
        if left is None:
            left = max(0, max_tokens - used)
        return TokenBudget(max_tokens=int(max_tokens), tokens_used=int(used), tokens_left=int(left))

    def needs_renewal(self) -> bool:
        budget = self.budget()
        return budget is None or budget.is_critical(self.renew_threshold)

    async def _create(self) -> None:
        LOGGER.info("Initializing classifier session")
        try:
            handle = await self.provider.create(self.system_prompt)
        except Exception as exc:
            self._handle = None
            LOGGER.error("Failed to initialize classifier session: %s", exc)
            raise InitializationError(str(exc) or type(exc).__name__) from exc
        self._handle = handle
        self.sessions_created += 1
        budget = self.budget()
        LOGGER.debug("Initial token status: %s", budget.as_dict() if budget else None)

    async def ensure_ready(self) -> None:
        if self._handle is not None:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._create())
        task = self._init_task
        try:
            await asyncio.shield(task)
        finally:
            if self._init_task is task and task.done():
                self._init_task = None

    async def _destroy(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        self.sessions_destroyed += 1
        try:
            await handle.destroy()
        except Exception as exc:
            LOGGER.warning("Ignoring error while destroying classifier session: %s", exc)

    async def renew(self) -> None:
        LOGGER.info("Renewing classifier session")
        await self._destroy()
        await self.ensure_ready()

    def _check_budget(self) -> None:
        budget = self.budget()
        if budget is not None and budget.is_critical(self.renew_threshold):
            raise BudgetExhaustionError(
                f"{budget.tokens_left} of {budget.max_tokens} tokens left"
            )

    async def ensure_budget(self) -> None:
        """Create the session if needed and renew it when its budget is critical."""
        await self.ensure_ready()
        try:
            self._check_budget()
        except BudgetExhaustionError as exc:
            LOGGER.info("Token limit approaching (%s); refreshing session", exc)
            await self.renew()

    def fit_text(self, text: str) -> str:
        budget = self.budget()
        max_tokens = budget.max_tokens if budget else self.default_max_tokens
        estimated = math.ceil(len(text) / self.chars_per_token)
        safe_limit = math.floor(max_tokens * self.input_budget_fraction)
        if estimated <= safe_limit:
            return text
        safe_chars = safe_limit * self.chars_per_token
        LOGGER.info("Text truncated from %d to %d characters", len(text), safe_chars)
        return text[:safe_chars] + TRUNCATION_MARKER

    async def classify(self, text: str) -> str:
        if self._handle is None:
            raise ClassificationError("classifier session not initialized")
        processed = self.fit_text(text)
        before = self.budget()
        LOGGER.debug(
            "Processing text (%d chars); token status: %s",
            len(processed),
            before.as_dict() if before else None,
        )
        try:
            result = await self._handle.classify(processed)
        except Exception as exc:
            if is_budget_message(exc):
                raise BudgetExhaustionError(str(exc)) from exc
            raise ClassificationError(str(exc) or type(exc).__name__) from exc
        after = self.budget()
        LOGGER.debug("Token status after classify: %s", after.as_dict() if after else None)
        return str(result)

    async def close(self) -> None:
        await self._destroy()
