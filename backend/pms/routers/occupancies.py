"""
住宿管理路由
"""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pms.database import get_db
from pms.models.schemas import OccupancyResponse, StayRevision
from pms.security.auth import get_security_context
from pms.security.context import SecurityContext
from pms.services.errors import OccupancyError, to_http_exception
from pms.services.occupancy_service import OccupancyService, build_occupancy_detail
from pms.services.stay_service import StayService

router = APIRouter(prefix="/occupancies", tags=["住宿管理"])


@router.get("/active", response_model=List[OccupancyResponse])
def list_active_occupancies(
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """所属物业的在住记录"""
    service = OccupancyService(db)
    return [build_occupancy_detail(o) for o in service.get_active_occupancies(context)]


@router.get("/{occupancy_id}", response_model=OccupancyResponse)
def get_occupancy(
    occupancy_id: int,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """住宿详情"""
    service = OccupancyService(db)
    try:
        return service.get_occupancy_detail(occupancy_id, context)
    except OccupancyError as e:
        raise to_http_exception(e)


@router.put("/{occupancy_id}", response_model=OccupancyResponse)
def revise_stay(
    occupancy_id: int,
    data: StayRevision,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """修改预计离店/房价/入住人数"""
    service = StayService(db)
    try:
        occupancy = service.revise_stay(occupancy_id, data, context)
    except OccupancyError as e:
        raise to_http_exception(e)
    return build_occupancy_detail(occupancy)
