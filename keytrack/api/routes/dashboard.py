# =======================================================================================
# keytrack/api/routes/dashboard
# =======================================================================================

from fastapi import APIRouter, Depends

from ...models.schemas import Actor, Summary, SummaryResponse
from ...services.dashboard_service import DashboardService
from ...services.fanout import FanoutHub
from ..dependencies import get_current_actor, get_dashboard_service, get_fanout

router = APIRouter()


@router.get("/dashboard/summary", response_model=SummaryResponse)
def get_summary(
    dashboard_service: DashboardService = Depends(get_dashboard_service),
    fanout: FanoutHub = Depends(get_fanout),
    actor: Actor = Depends(get_current_actor),
):
    summary_dict = dashboard_service.get_summary()
    return SummaryResponse(summary=Summary(**summary_dict, connected_clients=fanout.connection_count()))
