"""
退房管理路由
"""
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pms.database import get_db
from pms.models.schemas import CheckOutRequest, CheckoutSummary, OccupancyResponse
from pms.security.auth import get_security_context
from pms.security.context import SecurityContext
from pms.services.checkout_service import CheckOutService
from pms.services.errors import OccupancyError, to_http_exception
from pms.services.occupancy_service import OccupancyService, build_occupancy_detail

router = APIRouter(prefix="/checkout", tags=["退房管理"])


@router.post("", response_model=CheckoutSummary)
def check_out(
    data: CheckOutRequest,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """退房（余额必须结清）"""
    service = CheckOutService(db)
    try:
        return service.check_out(data, context)
    except OccupancyError as e:
        raise to_http_exception(e)


@router.get("/upcoming", response_model=List[OccupancyResponse])
def get_upcoming_checkouts(
    days: int = Query(1, ge=1, le=30),
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """未来 days 天内预计退房"""
    service = OccupancyService(db)
    return [build_occupancy_detail(o) for o in service.get_upcoming_checkouts(context, days)]


@router.get("/overdue", response_model=List[OccupancyResponse])
def get_overdue_stays(
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """逾期未退房"""
    service = OccupancyService(db)
    return [build_occupancy_detail(o) for o in service.get_overdue_stays(context)]
