"""
本体对象定义 (Ontology Objects)
入住生命周期涉及的业务实体：房间、客人、住宿（Occupancy）、支付流水
物业/楼层/房间的目录维护属于外部服务，这里只保留引擎需要读写的字段
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from pms.database import Base


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态枚举"""
    VACANT = "VACANT"              # 空闲
    RESERVED = "RESERVED"          # 已预留
    OCCUPIED = "OCCUPIED"          # 入住中
    DIRTY = "DIRTY"                # 待清洁
    CLEANING = "CLEANING"          # 清洁中
    MAINTENANCE = "MAINTENANCE"    # 维修中


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"


class BookingSource(str, Enum):
    """订单来源"""
    WALK_IN = "WALK_IN"
    PHONE = "PHONE"
    ONLINE = "ONLINE"
    OTA = "OTA"
    CORPORATE = "CORPORATE"
    GROUP = "GROUP"


class IdProofType(str, Enum):
    """证件类型"""
    AADHAAR = "AADHAAR"
    PASSPORT = "PASSPORT"
    DRIVING_LICENSE = "DRIVING_LICENSE"
    VOTER_ID = "VOTER_ID"
    PAN_CARD = "PAN_CARD"
    OTHER = "OTHER"


class EmployeeRole(str, Enum):
    """员工角色"""
    OWNER = "OWNER"                # 业主
    RECEPTIONIST = "RECEPTIONIST"  # 前台


# ============== 本体对象定义 ==============

class Property(Base):
    """
    物业对象
    由目录服务维护，引擎只用于权限范围判断
    """
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    owner_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # 链接
    rooms = relationship("Room", back_populates="property")


class Room(Base):
    """
    房间对象
    status 只由入住（→ OCCUPIED）、退房（→ DIRTY）和外部客房管理动作修改
    """
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("property_id", "room_number", name="uq_rooms_property_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    room_number = Column(String(10), nullable=False)               # 房间号
    floor = Column(Integer, default=1)                             # 楼层
    capacity = Column(Integer, default=2)                          # 可住人数
    price_per_night = Column(Numeric(10, 2), nullable=False)       # 默认房价
    status = Column(SQLEnum(RoomStatus), default=RoomStatus.VACANT, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    property = relationship("Property", back_populates="rooms")
    occupancies = relationship("Occupancy", back_populates="room")


class Guest(Base):
    """
    客人对象
    身份键：(id_proof_type, id_proof_number) 两者都存在时唯一
    """
    __tablename__ = "guests"
    __table_args__ = (
        UniqueConstraint("id_proof_type", "id_proof_number", name="uq_guests_id_proof"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)           # 姓名
    email = Column(String(100))                          # 邮箱
    phone = Column(String(20))                           # 手机号
    alternate_phone = Column(String(20))                 # 备用电话
    id_proof_type = Column(SQLEnum(IdProofType))         # 证件类型
    other_id_proof = Column(String(50))                  # 其他证件名称（OTHER 时）
    id_proof_number = Column(String(50))                 # 证件号码
    address = Column(Text)
    city = Column(String(50))
    state = Column(String(50))
    country = Column(String(50))
    nationality = Column(String(50))
    date_of_birth = Column(Date)
    gender = Column(String(20))
    emergency_contact = Column(String(100))
    emergency_phone = Column(String(20))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    occupancy_links = relationship("OccupancyGuest", back_populates="guest")


class Occupancy(Base):
    """
    住宿对象 - 入住期间的聚合根
    actual_check_out 为空即在住；同一房间最多一条在住记录（部分唯一索引）
    """
    __tablename__ = "occupancies"
    __table_args__ = (
        Index(
            "uq_occupancies_active_room", "room_id",
            unique=True,
            sqlite_where=text("actual_check_out IS NULL"),
            postgresql_where=text("actual_check_out IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)      # 主客人
    check_in_time = Column(DateTime, nullable=False)                          # 入住时间
    expected_check_out = Column(DateTime, nullable=True)                      # 预计离店
    actual_check_out = Column(DateTime, nullable=True)                        # 实际退房
    actual_room_rate = Column(Numeric(10, 2), nullable=False)                 # 协议房价/晚
    number_of_occupants = Column(Integer, nullable=False, default=1)
    total_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    paid_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    balance_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    last_paid_date = Column(DateTime, nullable=True)
    booking_source = Column(SQLEnum(BookingSource), default=BookingSource.WALK_IN)
    # 团队/协议单位订单由外部维护，这里只存引用
    group_booking_id = Column(String(50), nullable=True)
    corporate_booking_id = Column(String(50), nullable=True)
    checked_in_by = Column(Integer, ForeignKey("employees.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    room = relationship("Room", back_populates="occupancies")
    primary_guest = relationship("Guest", foreign_keys=[guest_id])
    guest_links = relationship("OccupancyGuest", back_populates="occupancy",
                               order_by="OccupancyGuest.id")
    payments = relationship("Payment", back_populates="occupancy", order_by="Payment.id")
    operator = relationship("Employee", foreign_keys=[checked_in_by])

    @property
    def is_active(self) -> bool:
        return self.actual_check_out is None


class OccupancyGuest(Base):
    """住宿-客人关联，每个住宿恰有一位主客人"""
    __tablename__ = "occupancy_guests"
    __table_args__ = (
        UniqueConstraint("occupancy_id", "guest_id", name="uq_occupancy_guest"),
    )

    id = Column(Integer, primary_key=True, index=True)
    occupancy_id = Column(Integer, ForeignKey("occupancies.id"), nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)

    # 链接
    occupancy = relationship("Occupancy", back_populates="guest_links")
    guest = relationship("Guest", back_populates="occupancy_links")


class Payment(Base):
    """
    支付记录对象 - 只追加
    sum(amount) 始终等于所属住宿的 paid_amount
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    occupancy_id = Column(Integer, ForeignKey("occupancies.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)           # 支付金额
    payment_method = Column(SQLEnum(PaymentMethod), nullable=False)
    payment_date = Column(DateTime, default=datetime.now)
    paid_up_to_date = Column(DateTime)
    transaction_id = Column(String(100))                      # 外部流水号
    notes = Column(Text)
    received_by = Column(Integer, ForeignKey("employees.id"))

    # 链接
    occupancy = relationship("Occupancy", back_populates="payments")
    receiver = relationship("Employee", foreign_keys=[received_by])


class Employee(Base):
    """
    员工对象（认证由外部负责，这里保存角色与物业归属）
    """
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(SQLEnum(EmployeeRole), nullable=False)
    property_id = Column(Integer, nullable=True)                 # 前台所属物业
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
