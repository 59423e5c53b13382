from fastapi import APIRouter, Depends, status
from starlette.responses import Response

from devsync.core.config import Settings, get_settings
from devsync.core.errors import ErrorCode, http_exception
from devsync.observability.metrics import metrics_response

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
def get_metrics(settings: Settings = Depends(get_settings)) -> Response:
    if not settings.metrics_enabled:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "Metrics endpoint is disabled")
    return metrics_response()
