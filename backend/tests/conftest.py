"""
Pytest 配置和共享 fixtures
"""
import os

# 应用生命周期里的 init_db 使用全局引擎，测试时不落盘
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from pms.database import Base, get_db
from pms.models import ontology  # noqa
from pms.models.ontology import Employee, EmployeeRole, Property, Room, RoomStatus, Guest, IdProofType
from pms.models.schemas import CheckInRequest, GuestDescriptor, InitialPayment
from pms.security.auth import get_password_hash, create_access_token
from pms.security.context import SecurityContext
from pms.services.checkin_service import CheckInService
from pms.main import app

CHECK_IN_TIME = datetime(2026, 3, 1, 14, 0)


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== 员工与物业 Fixtures ==============

def _add(db_session, obj):
    db_session.add(obj)
    db_session.commit()
    db_session.refresh(obj)
    return obj


@pytest.fixture
def owner(db_session):
    """业主"""
    return _add(db_session, Employee(
        username="owner",
        password_hash=get_password_hash("123456"),
        name="业主老陈",
        role=EmployeeRole.OWNER,
        is_active=True
    ))


@pytest.fixture
def sample_property(db_session, owner):
    """业主名下的物业"""
    return _add(db_session, Property(name="海景酒店", owner_id=owner.id))


@pytest.fixture
def other_property(db_session):
    """不属于当前业主的物业"""
    return _add(db_session, Property(name="山景酒店"))


@pytest.fixture
def receptionist(db_session, sample_property):
    """前台（所属 sample_property）"""
    return _add(db_session, Employee(
        username="front1",
        password_hash=get_password_hash("123456"),
        name="前台小王",
        role=EmployeeRole.RECEPTIONIST,
        property_id=sample_property.id,
        is_active=True
    ))


@pytest.fixture
def other_receptionist(db_session, other_property):
    """其他物业的前台"""
    return _add(db_session, Employee(
        username="front2",
        password_hash=get_password_hash("123456"),
        name="前台小赵",
        role=EmployeeRole.RECEPTIONIST,
        property_id=other_property.id,
        is_active=True
    ))


@pytest.fixture
def receptionist_token(receptionist):
    return create_access_token(receptionist.id, receptionist.role)


@pytest.fixture
def receptionist_auth_headers(receptionist_token):
    """返回前台认证的请求头"""
    return {"Authorization": f"Bearer {receptionist_token}"}


@pytest.fixture
def owner_auth_headers(owner):
    """返回业主认证的请求头"""
    return {"Authorization": f"Bearer {create_access_token(owner.id, owner.role)}"}


@pytest.fixture
def other_auth_headers(other_receptionist):
    """返回其他物业前台认证的请求头"""
    token = create_access_token(other_receptionist.id, other_receptionist.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def context(db_session, receptionist):
    """前台的安全上下文"""
    return SecurityContext.for_employee(db_session, receptionist)


@pytest.fixture
def other_context(db_session, other_receptionist):
    """其他物业前台的安全上下文"""
    return SecurityContext.for_employee(db_session, other_receptionist)


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_room(db_session, sample_property):
    """创建测试房间"""
    return _add(db_session, Room(
        property_id=sample_property.id,
        room_number="101",
        floor=1,
        price_per_night=Decimal("1000.00"),
        status=RoomStatus.VACANT
    ))


@pytest.fixture
def sample_room_102(db_session, sample_property):
    """创建102房间"""
    return _add(db_session, Room(
        property_id=sample_property.id,
        room_number="102",
        floor=1,
        price_per_night=Decimal("800.00"),
        status=RoomStatus.VACANT
    ))


@pytest.fixture
def foreign_room(db_session, other_property):
    """其他物业的房间"""
    return _add(db_session, Room(
        property_id=other_property.id,
        room_number="201",
        floor=2,
        price_per_night=Decimal("600.00"),
        status=RoomStatus.VACANT
    ))


@pytest.fixture
def sample_guest(db_session):
    """已有档案的客人"""
    return _add(db_session, Guest(
        name="张三",
        phone="13800138000",
        email="zhangsan@example.com",
        id_proof_type=IdProofType.PASSPORT,
        id_proof_number="E12345678",
        nationality="CN"
    ))


# ============== 入住相关 Fixtures ==============

@pytest.fixture
def published():
    """收集服务发布的事件"""
    return []


@pytest.fixture
def make_checkin_request():
    """CheckInRequest 工厂：默认 1 位客人，住 2 晚，房价 1000；paid 为首笔收款"""
    def _make(room_id, paid=None, **kwargs):
        defaults = {
            "room_id": room_id,
            "check_in_time": CHECK_IN_TIME,
            "expected_check_out": CHECK_IN_TIME + timedelta(days=2),
            "actual_room_rate": Decimal("1000.00"),
            "guests": [GuestDescriptor(
                name="李四",
                phone="13900139000",
                id_proof_type=IdProofType.AADHAAR,
                id_proof_number="1234-5678-9012",
            )],
        }
        if paid is not None:
            defaults["initial_payment"] = InitialPayment(amount=Decimal(str(paid)))
        defaults.update(kwargs)
        return CheckInRequest(**defaults)
    return _make


@pytest.fixture
def checked_in(db_session, context, sample_room, make_checkin_request, published):
    """工厂：直接通过 CheckInService 办理入住，返回 Occupancy"""
    def _check_in(room=None, **kwargs):
        service = CheckInService(db_session, event_publisher=published.append)
        data = make_checkin_request((room or sample_room).id, **kwargs)
        return service.check_in(data, context)
    return _check_in


@pytest.fixture
def checkin_payload():
    """入住请求 JSON 工厂（API 测试用）"""
    def _make(room_id, paid=None, **kwargs):
        payload = {
            "room_id": room_id,
            "check_in_time": CHECK_IN_TIME.isoformat(),
            "expected_check_out": (CHECK_IN_TIME + timedelta(days=2)).isoformat(),
            "actual_room_rate": "1000.00",
            "guests": [{
                "name": "李四",
                "phone": "13900139000",
                "id_proof_type": "AADHAAR",
                "id_proof_number": "1234-5678-9012",
            }],
        }
        if paid is not None:
            payload["initial_payment"] = {"amount": str(paid), "payment_method": "CASH"}
        payload.update(kwargs)
        return payload
    return _make
