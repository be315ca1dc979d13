"""
入住路由
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pms.database import get_db
from pms.models.schemas import CheckInRequest, OccupancyResponse
from pms.security.auth import get_security_context
from pms.security.context import SecurityContext
from pms.services.checkin_service import CheckInService
from pms.services.errors import OccupancyError, to_http_exception
from pms.services.occupancy_service import build_occupancy_detail

router = APIRouter(prefix="/check-in", tags=["入住管理"])


@router.post("", response_model=OccupancyResponse)
def check_in(
    data: CheckInRequest,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """办理入住，返回住宿详情（含客人和首笔收款）"""
    service = CheckInService(db)
    try:
        occupancy = service.check_in(data, context)
    except OccupancyError as e:
        raise to_http_exception(e)
    return build_occupancy_detail(occupancy)
