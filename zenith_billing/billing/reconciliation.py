"""
Webhook reconciliation as an explicit saga.

A reconciliation is a short ordered list of idempotent steps (subscription
upsert, payment insert, profile flag, ...). Each step runs in its own
transaction: a failing step is rolled back, logged and recorded, and the
remaining steps still run. The per-step outcome is persisted in
reconciliation_logs so partial completions can be found and re-run with
`flask reconcile-retry`.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Callable, List, Optional

import sentry_sdk
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from zenith_billing.extensions import db
from zenith_billing.models import ReconciliationLog
from zenith_billing.signals import subscription_changed

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"


class StepSkipped(Exception):
    """Raised by a step that had nothing to do."""


@dataclass
class StepOutcome:
    name: str
    status: str
    detail: Optional[str] = None


@dataclass
class ReconciliationResult:
    provider: str
    event_type: str
    event_id: Optional[str]
    user_id: Optional[str]
    outcomes: List[StepOutcome] = field(default_factory=list)
    log_id: Optional[int] = None

    @property
    def complete(self):
        return all(o.status != FAILED for o in self.outcomes)

    @property
    def failed_steps(self):
        return [o.name for o in self.outcomes if o.status == FAILED]

    def outcome(self, name) -> Optional[StepOutcome]:
        for o in self.outcomes:
            if o.name == name:
                return o
        return None


@dataclass
class Step:
    name: str
    action: Callable[[], Optional[str]]
    # Steps that change the subscription row fire subscription_changed on success
    changes_subscription: bool = False


class ReconciliationSaga:

    def __init__(self, *, provider, event_type, event_id=None, user_id=None, payload=None):
        self.provider = provider
        self.event_type = event_type
        self.event_id = event_id
        self.user_id = user_id
        self.payload = payload
        self.steps: List[Step] = []

    def step(self, name, action, changes_subscription=False):
        self.steps.append(Step(name, action, changes_subscription))
        return self

    def run(self, only=None, log=None) -> ReconciliationResult:
        """
        Run every step (or only the named ones) and record the outcome. When
        `log` is given the existing ReconciliationLog row is updated instead
        of a new one being written.
        """
        result = ReconciliationResult(self.provider, self.event_type, self.event_id, self.user_id)
        subscription_touched = False

        for step in self.steps:
            if only is not None and step.name not in only:
                continue
            outcome = self._run_step(step)
            result.outcomes.append(outcome)
            if outcome.status == SUCCEEDED and step.changes_subscription:
                subscription_touched = True

        if only is not None and log is not None:
            result.outcomes = self._merge_outcomes(log.steps or [], result.outcomes)

        result.log_id = self._persist(result, log)

        if not result.complete:
            logger.error(
                "Reconciliation finished with failed steps",
                extra={
                    "provider": self.provider,
                    "event_type": self.event_type,
                    "event_id": self.event_id,
                    "user_id": self.user_id,
                    "failed_steps": result.failed_steps,
                    "reconciliation_log_id": result.log_id,
                },
            )
            with sentry_sdk.new_scope() as scope:
                scope.set_tag("billing_provider", self.provider)
                scope.set_context("reconciliation", {
                    "event_type": self.event_type,
                    "event_id": self.event_id,
                    "user_id": self.user_id,
                    "failed_steps": result.failed_steps,
                    "reconciliation_log_id": result.log_id,
                })
                sentry_sdk.capture_message("Partial webhook reconciliation", level="error")

        if subscription_touched and self.user_id:
            subscription_changed.send(self.user_id)

        return result

    def _run_step(self, step):
        try:
            detail = step.action()
            db.session.commit()
            return StepOutcome(step.name, SUCCEEDED, detail)
        except StepSkipped as e:
            db.session.rollback()
            return StepOutcome(step.name, SKIPPED, str(e) or None)
        except Exception as e:
            db.session.rollback()
            logger.error(
                f"Reconciliation step '{step.name}' failed",
                exc_info=True,
                extra={
                    "provider": self.provider,
                    "event_id": self.event_id,
                    "user_id": self.user_id,
                    "step": step.name,
                },
            )
            return StepOutcome(step.name, FAILED, f"{type(e).__name__}: {e}")

    @staticmethod
    def _merge_outcomes(previous, rerun):
        rerun_by_name = {o.name: o for o in rerun}
        merged = []
        for entry in previous:
            merged.append(rerun_by_name.pop(entry["name"], None) or StepOutcome(**entry))
        merged.extend(rerun_by_name.values())
        return merged

    def _persist(self, result, log=None):
        status = ReconciliationLog.STATUS_COMPLETED if result.complete else ReconciliationLog.STATUS_PARTIAL
        steps = [asdict(o) for o in result.outcomes]
        try:
            if log is None:
                log = ReconciliationLog(
                    provider=self.provider,
                    event_type=self.event_type,
                    event_id=self.event_id,
                    user_id=self.user_id,
                    status=status,
                    steps=steps,
                    payload=self.payload,
                )
                db.session.add(log)
            else:
                log.status = status
                log.steps = steps
                log.attempts = (log.attempts or 0) + 1
            db.session.commit()
            return log.id
        except SQLAlchemyError:
            db.session.rollback()
            logger.error(
                "Could not persist reconciliation outcome",
                exc_info=True,
                extra={"event_id": self.event_id, "steps": steps, "status": status},
            )
            return None


def incomplete_logs(limit=100):
    return db.session.execute(
        select(ReconciliationLog)
        .where(ReconciliationLog.status == ReconciliationLog.STATUS_PARTIAL)
        .order_by(ReconciliationLog.created_at)
        .limit(limit)
    ).scalars().all()


def retry_incomplete(rebuilders, limit=100):
    """
    Re-run the failed steps of partial reconciliations from their stored
    payloads. `rebuilders` maps provider name -> callable(log) returning a
    ReconciliationSaga (or None when the payload can no longer be replayed).
    """
    results = []
    for log in incomplete_logs(limit):
        rebuild = rebuilders.get(log.provider)
        saga = rebuild(log) if rebuild else None
        if saga is None:
            logger.warning("Reconciliation log cannot be replayed", extra={"reconciliation_log_id": log.id})
            continue
        results.append(saga.run(only=set(log.failed_steps()), log=log))
    return results
