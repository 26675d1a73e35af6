from fastapi import APIRouter, Depends

from auth.utils import require_scheduler_key
from services.reminder_service import run_dynamic_sweep, run_reminder_sweep
from services.service_context import ServiceContext, get_service_context

router = APIRouter(prefix="/reminders", tags=["reminders"], dependencies=[Depends(require_scheduler_key)])


@router.post("/check")
async def check_reminders(ctx: ServiceContext = Depends(get_service_context)):
    """Called by the external scheduler, typically once a minute."""
    return await run_reminder_sweep(ctx)


@router.post("/dynamic-check")
async def check_dynamic(ctx: ServiceContext = Depends(get_service_context)):
    return await run_dynamic_sweep(ctx)
