"""
安全上下文 - 操作人身份与物业范围
前台只能操作所属物业，业主可以操作名下所有物业
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from pms.models.ontology import Employee, EmployeeRole, Property
from pms.services.errors import Forbidden


@dataclass(frozen=True)
class SecurityContext:
    """
    安全上下文数据类

    Attributes:
        user_id: 操作人ID
        role: 角色（OWNER / RECEPTIONIST）
        property_ids: 可操作的物业ID集合
    """

    user_id: Optional[int]
    role: Optional[str]
    property_ids: FrozenSet[int] = field(default_factory=frozenset)

    @classmethod
    def for_employee(cls, db: Session, employee: Employee) -> "SecurityContext":
        """根据员工角色解析物业范围"""
        if employee.role == EmployeeRole.OWNER:
            rows = db.query(Property.id).filter(Property.owner_id == employee.id).all()
            property_ids = frozenset(r[0] for r in rows)
        elif employee.property_id is not None:
            property_ids = frozenset({employee.property_id})
        else:
            property_ids = frozenset()
        return cls(user_id=employee.id, role=employee.role.value, property_ids=property_ids)

    def can_access_property(self, property_id: int) -> bool:
        return property_id in self.property_ids

    def ensure_property(self, property_id: int, **details: Any) -> None:
        """不在范围内时抛 Forbidden"""
        if not self.can_access_property(property_id):
            raise Forbidden(property_id=property_id, **details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "property_ids": sorted(self.property_ids),
        }
