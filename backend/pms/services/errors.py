"""
入住引擎业务异常
每个异常带 HTTP 状态码和结构化 details（出错的具体值），便于调用方自行修正
"""
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


def _plain(value: Any) -> Any:
    """details 中的 Decimal 转为字符串，保持 JSON 可序列化且不丢精度"""
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value"):
        return value.value
    return value


class OccupancyError(Exception):
    """入住引擎异常基类"""

    code = "occupancy_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details: Dict[str, Any] = {k: _plain(v) for k, v in details.items()}
        super().__init__(message)

    def to_detail(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(OccupancyError):
    """输入缺失/格式错误/超出范围，不修改任何状态"""

    code = "validation_error"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        super().__init__(message, field=field, value=value)


class RoomNotAvailable(OccupancyError):
    """房间状态不允许入住"""

    code = "room_not_available"

    def __init__(self, room_id: int, current_status: Any):
        self.room_id = room_id
        self.current_status = current_status
        super().__init__(
            f"房间状态为 {_plain(current_status)}，无法入住",
            room_id=room_id, current_status=current_status,
        )


class ExceedsBalance(OccupancyError):
    """支付金额超过未付余额"""

    code = "exceeds_balance"

    def __init__(self, amount: Decimal, balance: Decimal):
        self.amount = amount
        self.balance = balance
        super().__init__(
            f"支付金额 {amount} 超过未付余额 {balance}",
            amount=amount, balance=balance,
        )


class PaymentIncomplete(OccupancyError):
    """余额未结清，不能退房"""

    code = "payment_incomplete"

    def __init__(self, occupancy_id: int, balance: Decimal,
                 total_amount: Optional[Decimal] = None, paid_amount: Optional[Decimal] = None):
        self.occupancy_id = occupancy_id
        self.balance = balance
        super().__init__(
            f"账单未结清，余额 {balance}，无法退房",
            occupancy_id=occupancy_id, balance_amount=balance,
            total_amount=total_amount, paid_amount=paid_amount,
        )


class AlreadyClosed(OccupancyError):
    """住宿已退房，不接受修改"""

    code = "already_closed"

    def __init__(self, occupancy_id: int):
        self.occupancy_id = occupancy_id
        super().__init__(f"住宿记录 {occupancy_id} 已退房", occupancy_id=occupancy_id)


class NotFound(OccupancyError):
    """引用的房间/住宿/客人不存在"""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} 不存在", entity=entity, id=entity_id)


class Forbidden(OccupancyError):
    """跨物业访问"""

    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "无权访问该物业的数据", **details: Any):
        super().__init__(message, **details)


class TransactionFailure(OccupancyError):
    """存储层失败，事务已整体回滚"""

    code = "transaction_failure"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} 失败，事务已回滚", operation=operation)


def to_http_exception(exc: OccupancyError) -> HTTPException:
    """业务异常 → HTTPException"""
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
