"""
Request-scoped dependencies: configuration, acting user and kernel services.

Routes open their own transaction with ``session_scope()`` and build the
services they need through ``Kernel``; a request that raises is rolled back
before the error handler answers.
"""

from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from harvest_config import EngineConfig, get_active_config
from harvest_kernel.domain.clock import Clock, SystemClock
from harvest_kernel.exceptions import ValidationError
from harvest_kernel.logging_config import LogContext
from harvest_kernel.selectors import BatchSelector, UnitSelector
from harvest_kernel.services import (
    AssignmentService,
    BatchNumberingService,
    PipelineLinker,
    StageService,
    UnitLedger,
)


def get_config(request: Request) -> EngineConfig:
    return getattr(request.app.state, "config", None) or get_active_config()


def get_clock(request: Request) -> Clock:
    return getattr(request.app.state, "clock", None) or SystemClock()


async def get_actor_id(
    config: Annotated[EngineConfig, Depends(get_config)],
    x_actor_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """
    Acting user from ``X-Actor-Id``; the configured default when absent.

    Async so that it runs in the request's own context: the actor bound to
    ``LogContext`` here is then seen by the route's worker thread.
    """
    if x_actor_id is None or not x_actor_id.strip():
        actor_id = config.api.default_actor_id
    else:
        try:
            actor_id = UUID(x_actor_id.strip())
        except ValueError:
            raise ValidationError("X-Actor-Id must be a UUID", field="X-Actor-Id") from None
    LogContext.set(actor_id=str(actor_id))
    return actor_id


@dataclass
class Kernel:
    """The services of one request, sharing one session."""

    session: Session
    stages: StageService
    assignment: AssignmentService
    linker: PipelineLinker
    ledger: UnitLedger
    batches: BatchSelector
    units: UnitSelector

    @classmethod
    def build(cls, session: Session, config: EngineConfig, clock: Clock) -> "Kernel":
        batching = config.batching
        numbering = BatchNumberingService(session, batching.batch_number_width)
        ledger = UnitLedger(session, clock)
        linker = PipelineLinker(session, clock, numbering=numbering, ledger=ledger)
        return cls(
            session=session,
            stages=StageService(
                session, clock, numbering=numbering, linker=linker, ledger=ledger
            ),
            assignment=AssignmentService(
                session, clock, ledger=ledger, max_units=batching.max_units_per_batch
            ),
            linker=linker,
            ledger=ledger,
            batches=BatchSelector(session),
            units=UnitSelector(session),
        )


@dataclass
class RequestContext:
    config: EngineConfig
    clock: Clock
    actor_id: UUID

    def kernel(self, session: Session) -> Kernel:
        return Kernel.build(session, self.config, self.clock)


def get_context(
    config: Annotated[EngineConfig, Depends(get_config)],
    clock: Annotated[Clock, Depends(get_clock)],
    actor_id: Annotated[UUID, Depends(get_actor_id)],
) -> RequestContext:
    return RequestContext(config=config, clock=clock, actor_id=actor_id)


Context = Annotated[RequestContext, Depends(get_context)]
