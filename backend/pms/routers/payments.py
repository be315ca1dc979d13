"""
收款路由
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pms.database import get_db
from pms.models.ontology import PaymentMethod
from pms.models.schemas import (
    OccupancyResponse, PaymentCreate, PaymentHistoryResponse, PaymentResponse,
    PendingPaymentsResponse
)
from pms.security.auth import get_security_context
from pms.security.context import SecurityContext
from pms.services.billing_service import BillingService
from pms.services.errors import OccupancyError, to_http_exception
from pms.services.occupancy_service import build_occupancy_detail

router = APIRouter(prefix="/payments", tags=["收款管理"])


@router.post("", response_model=OccupancyResponse)
def record_payment(
    data: PaymentCreate,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """记录收款，返回更新后的住宿"""
    service = BillingService(db)
    try:
        occupancy = service.record_payment(data, context)
    except OccupancyError as e:
        raise to_http_exception(e)
    return build_occupancy_detail(occupancy)


@router.get("", response_model=PaymentHistoryResponse)
def list_payment_history(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    payment_method: Optional[PaymentMethod] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """物业收款记录（可按日期、支付方式过滤）及汇总"""
    return BillingService(db).get_payment_history(
        context, start_date=start_date, end_date=end_date,
        payment_method=payment_method, limit=limit
    )


@router.get("/pending", response_model=PendingPaymentsResponse)
def list_pending_payments(
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """未结清的在住记录与逾期统计"""
    return BillingService(db).get_pending_payments(context)


@router.get("/occupancy/{occupancy_id}", response_model=List[PaymentResponse])
def list_payments(
    occupancy_id: int,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context)
):
    """住宿的支付流水"""
    service = BillingService(db)
    try:
        return service.get_payments(occupancy_id, context)
    except OccupancyError as e:
        raise to_http_exception(e)
