from src.api.providers.models.provider import Provider
from src.api.clients.models.client import Client
from src.api.attendance.models.attendance import AttendanceRecord
from src.api.contracts.models.contract import Contract, ContractExtension
from src.api.invoices.models.invoice import Invoice
from src.api.notifications.models.notification import Notification, DeliveryError
from src.api.common.utils.database import engine
from sqlmodel import SQLModel

# Models above are imported to register them with SQLModel


def init_db():
    """Initialize the database by creating all tables"""
    print("Creating database tables...")
    SQLModel.metadata.create_all(engine)
    print("Database tables created successfully.")


if __name__ == "__main__":
    init_db()
