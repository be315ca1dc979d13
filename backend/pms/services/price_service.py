"""
价格服务 - 住宿计费规则
nights = max(1, ceil(天数))，total = 房价 × nights
"""
import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pms.config import settings
from pms.services.errors import ValidationError

CENT = Decimal("0.01")
SECONDS_PER_DAY = 24 * 60 * 60


def to_naive(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间转换为本地 naive 时间（数据库统一存 naive）"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def money(value) -> Decimal:
    """金额统一保留两位小数"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_nights(check_in: datetime, check_out: Optional[datetime]) -> int:
    """
    计算计费晚数

    未提供离店时间按 1 晚计；不足一天向上取整；最少 1 晚。
    """
    if check_out is None:
        return 1
    days = (check_out - check_in).total_seconds() / SECONDS_PER_DAY
    return max(1, math.ceil(days))


def calculate_total_amount(rate: Decimal, nights: int) -> Decimal:
    """房费总额"""
    return money(Decimal(rate) * nights)


def validate_rate(rate: Optional[Decimal], field: str = "actual_room_rate") -> Decimal:
    """先按分取整再校验，不足一分的房价视为 0"""
    value = money(rate) if rate is not None else None
    if value is None or value <= 0:
        raise ValidationError(field, "房价必须大于 0", rate)
    return value


def validate_expected_checkout(check_in: datetime, check_out: datetime,
                               field: str = "expected_check_out") -> None:
    """离店时间必须晚于入住时间，且不超过入住后 MAX_STAY_DAYS 天"""
    if check_out <= check_in:
        raise ValidationError(field, "预计离店时间必须晚于入住时间", check_out.isoformat())
    latest = check_in + timedelta(days=settings.MAX_STAY_DAYS)
    if check_out > latest:
        raise ValidationError(
            field,
            f"预计离店时间不能超过入住后 {settings.MAX_STAY_DAYS} 天",
            check_out.isoformat(),
        )
