"""Cost gate for billable actions.

Every billable action goes through the same sequence:

    IDLE -> ESTIMATING -> AWAITING_CONFIRMATION -> EXECUTING -> RECONCILING -> IDLE

Cancelling at the confirmation step returns to IDLE with no side effects.
A failed execution returns to IDLE without committing anything and without
charging the estimate.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from .actions import BillableAction
from .config import config
from .cost import CostEstimate, TokenUsage, estimate_cost, percent_delta
from .errors import CredentialMissing, GenerationFailed, StudioError, ValidationFailed
from .session import ProjectSession

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    """Cost gate state."""
    IDLE = "idle"
    ESTIMATING = "estimating"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING = "executing"
    RECONCILING = "reconciling"


class GateOutcome(str, Enum):
    """How a submitted action ended."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CREDENTIAL_REQUIRED = "credential_required"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class PendingConfirmation:
    """The estimate waiting for the user's decision."""

    action_name: str
    model_name: str
    estimate: CostEstimate


@dataclass
class GateResult:
    """Result of submitting an action to the gate."""

    outcome: GateOutcome
    action_name: str
    estimate: Optional[CostEstimate] = None
    usage: Optional[TokenUsage] = None
    actual_cost: Optional[float] = None
    error: Optional[StudioError] = None

    @property
    def ok(self) -> bool:
        return self.outcome == GateOutcome.COMPLETED


@dataclass
class CostNotification:
    """Short-lived report of what an action actually cost. Not persisted."""

    action_name: str
    usage: TokenUsage
    actual_cost: float
    estimated_cost: float
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def delta(self) -> str:
        return percent_delta(self.estimated_cost, self.actual_cost)


Confirmer = Callable[[PendingConfirmation], Awaitable[bool]]


class CostGate:
    """Estimate, confirm, execute and reconcile billable actions for a session.

    The gate holds a single confirmation slot. Submitting a second action
    while one is awaiting confirmation supersedes the first, which resolves
    as CANCELLED. An action that is already executing is never interrupted.

    Confirmation comes either from `confirm()` / `cancel()` or, when a
    `confirmer` coroutine is given, from awaiting it.
    """

    def __init__(
        self,
        session: ProjectSession,
        confirmer: Optional[Confirmer] = None,
        notification_seconds: Optional[float] = None,
        on_notify: Optional[Callable[[CostNotification], None]] = None,
    ) -> None:
        """Initialize the gate.

        Args:
            session: Session whose document receives results and usage.
            confirmer: Optional coroutine deciding on each estimate.
            notification_seconds: Lifetime of a cost notification.
                Defaults to config.notification_seconds.
            on_notify: Called with every new notification.
        """
        self._session = session
        self._confirmer = confirmer
        self._notification_seconds = (
            config.notification_seconds if notification_seconds is None else notification_seconds
        )
        self._on_notify = on_notify
        self._phase: Optional[GateState] = None
        self._executing = 0
        self._pending: Optional[PendingConfirmation] = None
        self._decision: Optional[asyncio.Future] = None
        self.notification: Optional[CostNotification] = None

    @property
    def state(self) -> GateState:
        if self._phase is not None:
            return self._phase
        if self._pending is not None:
            return GateState.AWAITING_CONFIRMATION
        if self._executing:
            return GateState.EXECUTING
        return GateState.IDLE

    @property
    def pending(self) -> Optional[PendingConfirmation]:
        return self._pending

    def confirm(self) -> bool:
        """Approve the pending estimate. Returns False if nothing was pending."""
        return self._resolve(True)

    def cancel(self) -> bool:
        """Reject the pending estimate. Returns False if nothing was pending."""
        return self._resolve(False)

    def _resolve(self, approved: bool) -> bool:
        if self._decision is None or self._decision.done():
            return False
        self._decision.set_result(approved)
        return True

    async def submit(self, action: BillableAction) -> GateResult:
        """Run `action` through the gate and report how it ended."""
        session = self._session
        if not session.credential:
            logger.info(f"{action.name}: credential required")
            return GateResult(GateOutcome.CREDENTIAL_REQUIRED, action.name, error=CredentialMissing())

        self._phase = GateState.ESTIMATING
        try:
            doc = session.present
            action.validate(doc)
            estimate = estimate_cost(action.input_text(doc), action.output_tokens)
        except ValidationFailed as e:
            logger.info(f"{action.name} rejected: {e}")
            return GateResult(GateOutcome.REJECTED, action.name, error=e)
        finally:
            self._phase = None

        logger.debug(
            f"{action.name}: estimated {estimate.input_tokens} in / "
            f"{estimate.output_tokens} out tokens"
        )
        pending = PendingConfirmation(action.name, action.model_name, estimate)
        if not await self._await_confirmation(pending):
            logger.info(f"{action.name} cancelled")
            return GateResult(GateOutcome.CANCELLED, action.name, estimate=estimate)

        return await self._execute(action, estimate)

    async def _await_confirmation(self, pending: PendingConfirmation) -> bool:
        if self._decision is not None and not self._decision.done():
            logger.info(f"{self._pending.action_name} superseded by {pending.action_name}")
            self._decision.set_result(False)

        decision = asyncio.get_running_loop().create_future()
        self._pending = pending
        self._decision = decision
        try:
            if self._confirmer is not None:
                approved = bool(await self._confirmer(pending))
                if not decision.done():
                    decision.set_result(approved)
            return await decision
        finally:
            if self._decision is decision:
                self._pending = None
                self._decision = None

    async def _execute(self, action: BillableAction, estimate: CostEstimate) -> GateResult:
        session = self._session
        snapshot = session.present
        session.status.start(action.scene_id, action.activity)
        self._executing += 1
        try:
            try:
                response = await action.execute(session.backend, session.credential, snapshot)
            except Exception as e:
                error = e if isinstance(e, GenerationFailed) else GenerationFailed(str(e))
                logger.error(f"{action.name} failed: {error}")
                return GateResult(GateOutcome.FAILED, action.name, estimate=estimate, error=error)

            # Merge into whatever the document is now, not the snapshot
            session.commit(action.apply(session.present, response.data))
        finally:
            self._executing -= 1
            session.status.finish(action.scene_id, action.activity)

        return self._reconcile(action, estimate, response.usage)

    def _reconcile(self, action: BillableAction, estimate: CostEstimate, usage: TokenUsage) -> GateResult:
        self._phase = GateState.RECONCILING
        try:
            actual_cost = usage.cost
            self._session.accrue_usage(usage)
            self._notify(CostNotification(action.name, usage, actual_cost, estimate.total_cost))
        finally:
            self._phase = None

        logger.info(
            f"{action.name}: {usage.prompt_tokens} in / {usage.candidates_tokens} out tokens"
        )
        return GateResult(
            GateOutcome.COMPLETED,
            action.name,
            estimate=estimate,
            usage=usage,
            actual_cost=actual_cost,
        )

    def _notify(self, notification: CostNotification) -> None:
        self.notification = notification
        if self._on_notify is not None:
            self._on_notify(notification)
        asyncio.get_running_loop().call_later(
            self._notification_seconds, self._dismiss, notification
        )

    def _dismiss(self, notification: CostNotification) -> None:
        if self.notification is notification:
            self.notification = None

    def dismiss(self) -> None:
        self.notification = None
