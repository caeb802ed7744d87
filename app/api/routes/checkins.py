from fastapi import APIRouter, Depends

from app.core.dependencies import get_checkin_service
from app.core.rate_limit import ROUTE_CHECKINS, rate_limit
from app.schemas.checkins import CheckIn, CheckInRequest, CheckInResponse
from app.services.checkin_service import CheckInService

router = APIRouter(tags=["Check-ins"])


@router.post(
    "/checkins",
    response_model=CheckInResponse,
    dependencies=[Depends(rate_limit(ROUTE_CHECKINS))],
)
def create_checkin(
    payload: CheckInRequest,
    service: CheckInService = Depends(get_checkin_service),
) -> CheckInResponse:
    """Record a visit to a café.

    Raises:
        ValidationAppError: 400 for a blank cafe_id.
        NotFoundAppError: 404 when the café does not exist.
    """
    row = service.check_in(payload.cafe_id)
    return CheckInResponse(check_in=CheckIn.model_validate(row))
