from typing import List, Optional
from sqlmodel import Session, select
from src.api.clients.models.client import Client
from src.api.clients.schemas.client import ClientCreate, ClientUpdate


class ClientService:
    """Service class for managing a provider's clients."""

    def __init__(self, db: Session):
        self.db = db

    def create_client(self, provider_id: int, client_data: ClientCreate) -> Client:
        """Create a new client"""
        client = Client(
            provider_id=provider_id,
            name=client_data.name,
            guardian_name=client_data.guardian_name,
        )
        client.phone = client_data.phone  # This will encrypt the phone
        client.guardian_phone = client_data.guardian_phone

        self.db.add(client)
        self.db.commit()
        self.db.refresh(client)
        return client

    def get_client(self, provider_id: int, client_id: int) -> Optional[Client]:
        """Get a client by ID; clients of other providers are not visible"""
        client = self.db.get(Client, client_id)
        if not client or client.provider_id != provider_id:
            return None
        return client

    def get_client_by_phone(self, provider_id: int, phone: str) -> Optional[Client]:
        """Get a client by phone (decrypted)"""
        # Phones are encrypted with a random IV, so every row is decrypted to compare
        digits = "".join(ch for ch in phone if ch.isdigit())
        clients = self.db.exec(select(Client).where(Client.provider_id == provider_id)).all()
        for client in clients:
            if digits and digits in (client.phone, client.guardian_phone):
                return client
        return None

    def get_clients(
        self,
        provider_id: int,
        active_only: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Client]:
        """Get a list of clients sorted by name"""
        query = select(Client).where(Client.provider_id == provider_id)
        if active_only:
            query = query.where(Client.is_active == True)  # noqa: E712
        query = query.order_by(Client.name, Client.id).offset(skip).limit(limit)
        return list(self.db.exec(query).all())

    def update_client(self, provider_id: int, client_id: int, client_data: ClientUpdate) -> Optional[Client]:
        """Update a client"""
        client = self.get_client(provider_id, client_id)
        if not client:
            return None

        update_data = client_data.model_dump(exclude_unset=True)
        # Handle encrypted fields separately
        for field in ("phone", "guardian_phone"):
            if field in update_data:
                setattr(client, field, update_data.pop(field))
        for key, value in update_data.items():
            setattr(client, key, value)

        client.touch()
        self.db.add(client)
        self.db.commit()
        self.db.refresh(client)
        return client

    def archive_client(self, provider_id: int, client_id: int) -> bool:
        """
        Deactivate a client.

        Clients are never deleted: their contracts and invoices stay on
        record.
        """
        client = self.get_client(provider_id, client_id)
        if not client:
            return False
        client.is_active = False
        client.touch()
        self.db.add(client)
        self.db.commit()
        return True
