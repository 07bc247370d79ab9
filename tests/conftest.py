import pytest
import os
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool
from unittest.mock import Mock
from cryptography.fernet import Fernet

# Import all models to ensure they're registered with SQLModel
from src.api.providers.models.provider import Provider
from src.api.clients.models.client import Client
from src.api.attendance.models.attendance import AttendanceRecord
from src.api.contracts.models.contract import Contract, ContractExtension
from src.api.invoices.models.invoice import Invoice
from src.api.notifications.models.notification import Notification, DeliveryError

from src.api.common.constants.billing import (
    AbsencePolicy, AttendanceStatus, BillingMode, ContractStatus, PricingMode, Weekday)
from src.api.attendance.schemas.attendance import AttendanceCreate
from src.api.attendance.services.attendance_service import AttendanceService
from src.api.contracts.schemas.contract import ContractCreate, ContractExtend, ContractStatusUpdate
from src.api.contracts.services.contract_service import ContractService


@pytest.fixture(scope="session")
def test_encryption_key():
    """Provide a test encryption key for testing encrypted fields"""
    return Fernet.generate_key().decode()


@pytest.fixture(scope="session", autouse=True)
def setup_test_env(test_encryption_key):
    """Setup test environment variables"""
    os.environ["ENCRYPTION_KEY"] = test_encryption_key
    os.environ["ENV"] = "test"
    yield
    # Cleanup
    if "ENCRYPTION_KEY" in os.environ:
        del os.environ["ENCRYPTION_KEY"]
    if "ENV" in os.environ:
        del os.environ["ENV"]


@pytest.fixture
def test_engine():
    """Create an in-memory SQLite database for testing"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def test_session(test_engine):
    """Create a test database session"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def mock_sms_client():
    """SMS client that accepts every message"""
    client = Mock()
    client.send_sms.return_value = {"message_id": "test-message"}
    return client


# Test data factories
class TestDataFactory:
    @staticmethod
    def create_provider(session: Session, **kwargs) -> Provider:
        """Create a test provider"""
        data = {
            "name": "Test Studio",
            "business_name": "Test Piano Studio",
            "default_billing_mode": BillingMode.PREPAID,
            "default_absence_policy": AbsencePolicy.DEDUCT_NEXT,
            "bank_name": "Test Bank",
            "account_holder": "Test Owner",
        }
        account_number = kwargs.pop("account_number", "110-123-456789")
        data.update(kwargs)

        provider = Provider(**data)
        provider.account_number = account_number
        session.add(provider)
        session.commit()
        session.refresh(provider)
        return provider

    @staticmethod
    def create_client(session: Session, provider_id: int = None, **kwargs) -> Client:
        """Create a test client"""
        if provider_id is None:
            provider_id = TestDataFactory.create_provider(session).id

        data = {
            "name": "Test Client",
            "phone": "010-1234-5678",
            "guardian_name": None,
            "guardian_phone": None,
        }
        data.update(kwargs)

        client = Client(provider_id=provider_id, name=data["name"], guardian_name=data["guardian_name"])
        client.phone = data["phone"]
        client.guardian_phone = data["guardian_phone"]
        session.add(client)
        session.commit()
        session.refresh(client)
        return client

    @staticmethod
    def create_contract(
        session: Session,
        provider: Provider = None,
        client: Client = None,
        status: ContractStatus = ContractStatus.DRAFT,
        today: Optional[date] = None,
        **kwargs
    ) -> Contract:
        """
        Create a test contract through ContractService.

        Defaults to a prepaid 10-session pass at 100,000 with deduct_next.
        `status` moves it to confirmed or sent; `today` is the send date.
        """
        if provider is None:
            provider = TestDataFactory.create_provider(session)
        if client is None:
            client = TestDataFactory.create_client(session, provider.id)

        data = {
            "client_id": client.id,
            "subject": "Piano",
            "pricing_mode": PricingMode.SESSIONS,
            "base_price": Decimal("100000"),
            "total_sessions": 10,
            "billing_mode": BillingMode.PREPAID,
            "absence_policy": AbsencePolicy.DEDUCT_NEXT,
            "teacher_signature": "teacher-signature",
            "client_signature": "client-signature",
        }
        data.update(kwargs)

        service = ContractService(session)
        contract = service.create_contract(provider.id, ContractCreate(**data))
        if status in (ContractStatus.CONFIRMED, ContractStatus.SENT):
            service.update_status(
                provider.id, contract.id, ContractStatusUpdate(status=ContractStatus.CONFIRMED))
        if status == ContractStatus.SENT:
            service.update_status(
                provider.id, contract.id, ContractStatusUpdate(status=ContractStatus.SENT),
                today=today or date(2024, 1, 1))
        session.refresh(contract)
        return contract

    @staticmethod
    def create_amount_contract(session: Session, **kwargs) -> Contract:
        """Create a test amount pass: 300,000 valid for the first half of 2024"""
        data = {
            "pricing_mode": PricingMode.AMOUNT,
            "base_price": Decimal("300000"),
            "total_sessions": None,
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 6, 30),
        }
        data.update(kwargs)
        return TestDataFactory.create_contract(session, **data)

    @staticmethod
    def create_calendar_contract(session: Session, **kwargs) -> Contract:
        """Create a test monthly contract: TUE/THU, 100,000 per month, Q1 2024"""
        data = {
            "pricing_mode": PricingMode.CALENDAR,
            "base_price": Decimal("100000"),
            "total_sessions": None,
            "weekdays": [Weekday.TUE, Weekday.THU],
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 3, 31),
            "billing_day": 1,
        }
        data.update(kwargs)
        return TestDataFactory.create_contract(session, **data)

    @staticmethod
    def record_attendance(
        session: Session,
        contract: Contract,
        occurred_at: datetime,
        status: AttendanceStatus = AttendanceStatus.PRESENT,
        **kwargs
    ) -> AttendanceRecord:
        """Record attendance through AttendanceService so billing runs"""
        data = {
            "contract_id": contract.id,
            "occurred_at": occurred_at,
            "status": status,
        }
        data.update(kwargs)
        return AttendanceService(session).create_attendance(
            contract.provider_id, AttendanceCreate(**data))

    @staticmethod
    def extend_contract(session: Session, contract: Contract, **kwargs) -> ContractExtension:
        """Extend a contract through ContractService"""
        return ContractService(session).extend_contract(
            contract.provider_id, contract.id, ContractExtend(**kwargs))


@pytest.fixture
def test_data_factory():
    """Provide test data factory"""
    return TestDataFactory
