"""
Flow resolution - picks the workflow template for an appointment.

Strategies run in order and the first one that returns a resolution wins:

    marketplace → job override → home → client → business default → none

Marketplace comes first and beats even an explicit override: marketplace
jobs always carry the platform checklist and photo proof.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models import Appointment
from ...models_jobflow import PLATFORM_PHOTO_REQUIREMENT, CustomJobFlow
from ..marketplace.service import is_marketplace_job
from ..templates.repository import JobFlowTemplateRepository
from .schemas import FlowResolution, FlowSource

logger = logging.getLogger(__name__)

repo = JobFlowTemplateRepository()


@dataclass
class ResolutionContext:
    db: Session
    appointment: Appointment
    business_owner_id: int
    override_template_id: Optional[int] = None


def _from_flow(flow: Optional[CustomJobFlow], source: FlowSource) -> Optional[FlowResolution]:
    if not flow or not flow.is_active():
        return None
    return FlowResolution(
        uses_platform_flow=False,
        custom_job_flow_id=flow.id,
        photo_requirement=flow.photo_requirement or "optional",
        source=source,
    )


def resolve_marketplace(ctx: ResolutionContext) -> Optional[FlowResolution]:
    if not is_marketplace_job(ctx.db, ctx.appointment, ctx.business_owner_id):
        return None
    return FlowResolution(
        uses_platform_flow=True,
        custom_job_flow_id=None,
        photo_requirement=PLATFORM_PHOTO_REQUIREMENT,
        source="marketplace",
    )


def resolve_job_override(ctx: ResolutionContext) -> Optional[FlowResolution]:
    if not ctx.override_template_id:
        return None
    flow = repo.get_active_flow(ctx.db, ctx.override_template_id, ctx.business_owner_id)
    if not flow:
        # Foreign, archived or unknown overrides fall through
        logger.debug(f"Ignoring override flow {ctx.override_template_id} for appointment {ctx.appointment.id}")
    return _from_flow(flow, "job_override")


def resolve_home(ctx: ResolutionContext) -> Optional[FlowResolution]:
    if not ctx.appointment.home_id:
        return None
    assignment = repo.get_home_assignment(ctx.db, ctx.business_owner_id, ctx.appointment.home_id)
    return _from_flow(assignment.flow if assignment else None, "home")


def resolve_client(ctx: ResolutionContext) -> Optional[FlowResolution]:
    relation = repo.get_active_client_relation(ctx.db, ctx.business_owner_id, ctx.appointment.user_id)
    if not relation:
        return None
    assignment = repo.get_client_assignment(ctx.db, ctx.business_owner_id, relation.id)
    return _from_flow(assignment.flow if assignment else None, "client")


def resolve_default(ctx: ResolutionContext) -> Optional[FlowResolution]:
    return _from_flow(repo.get_default_flow(ctx.db, ctx.business_owner_id), "default")


FLOW_STRATEGIES: tuple[Callable[[ResolutionContext], Optional[FlowResolution]], ...] = (
    resolve_marketplace,
    resolve_job_override,
    resolve_home,
    resolve_client,
    resolve_default,
)

NO_FLOW = FlowResolution(uses_platform_flow=False, custom_job_flow_id=None, photo_requirement="optional", source="none")


def resolve_flow(
    db: Session,
    appointment: Appointment,
    business_owner_id: int,
    override_template_id: Optional[int] = None,
) -> FlowResolution:
    """Resolve the workflow for an appointment; read-only"""
    ctx = ResolutionContext(db, appointment, business_owner_id, override_template_id)
    for strategy in FLOW_STRATEGIES:
        resolution = strategy(ctx)
        if resolution is not None:
            logger.debug(f"🔎 Appointment {appointment.id} resolved via {resolution.source}")
            return resolution
    return NO_FLOW
