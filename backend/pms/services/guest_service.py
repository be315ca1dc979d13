"""
客人服务 - 身份解析
按证件键 (id_proof_type, id_proof_number) 去重：命中则合并更新联系方式，否则新建客人
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from pms.models.ontology import Guest, IdProofType
from pms.models.schemas import GuestDescriptor
from pms.services.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ResolvedGuest:
    """解析后的客人及其在本次入住中的角色"""
    guest: Guest
    is_primary: bool
    created: bool


def select_primary_index(descriptors: Sequence[GuestDescriptor]) -> int:
    """
    选择主客人：显式标记的优先，没有标记时取第一位

    标记多位主客人属于输入错误。
    """
    if not descriptors:
        raise ValidationError("guests", "至少需要一位客人", [])
    flagged = [i for i, d in enumerate(descriptors) if d.is_primary]
    if len(flagged) > 1:
        raise ValidationError(
            "guests", "只能指定一位主客人",
            [descriptors[i].name for i in flagged],
        )
    return flagged[0] if flagged else 0


def ensure_single_primary(resolved: Sequence[ResolvedGuest]) -> ResolvedGuest:
    """写入关联前确认恰好一位主客人"""
    primaries = [r for r in resolved if r.is_primary]
    if len(primaries) != 1:
        raise ValidationError("guests", "住宿必须恰好有一位主客人", len(primaries))
    return primaries[0]


class GuestService:
    """客人服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_guest(self, guest_id: int) -> Guest:
        guest = self.db.query(Guest).filter(Guest.id == guest_id).first()
        if not guest:
            raise NotFound("guest", guest_id)
        return guest

    def find_by_identity(self, id_proof_type: IdProofType, id_proof_number: str) -> Optional[Guest]:
        """根据证件键精确查找"""
        return self.db.query(Guest).filter(
            Guest.id_proof_type == id_proof_type,
            Guest.id_proof_number == id_proof_number
        ).first()

    def resolve_guest(self, descriptor: GuestDescriptor) -> ResolvedGuest:
        """
        解析单个客人（不提交，由调用方的事务负责）

        命中证件键时只覆盖本次显式提交的字段，未提交的字段保持原值。
        """
        fields = descriptor.profile_fields()
        key = descriptor.identity_key()

        if key:
            guest = self.find_by_identity(*key)
            if guest:
                for name, value in fields.items():
                    setattr(guest, name, value)
                logger.info(f"Guest {guest.id} matched by id proof, updated {sorted(fields)}")
                return ResolvedGuest(guest=guest, is_primary=descriptor.is_primary, created=False)

        guest = Guest(**fields)
        self.db.add(guest)
        self.db.flush()
        return ResolvedGuest(guest=guest, is_primary=descriptor.is_primary, created=True)

    def resolve_guests(self, descriptors: Sequence[GuestDescriptor]) -> List[ResolvedGuest]:
        """
        按输入顺序解析全部客人

        同一请求中多次出现同一证件键时合并为一位客人，保留首次出现的位置。
        """
        primary_index = select_primary_index(descriptors)

        resolved: List[ResolvedGuest] = []
        by_guest_id = {}
        for index, descriptor in enumerate(descriptors):
            result = self.resolve_guest(descriptor)
            result.is_primary = index == primary_index

            existing = by_guest_id.get(result.guest.id)
            if existing is not None:
                existing.is_primary = existing.is_primary or result.is_primary
                continue

            by_guest_id[result.guest.id] = result
            resolved.append(result)

        ensure_single_primary(resolved)
        return resolved
