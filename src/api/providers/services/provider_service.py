from typing import List, Optional
from fastapi.logger import logger
from sqlmodel import Session, select
from src.api.providers.models.provider import Provider
from src.api.providers.schemas.provider import ProviderCreate, ProviderUpdate


class ProviderService:
    """Service class for managing providers and their billing defaults."""

    def __init__(self, db: Session):
        self.db = db

    def create_provider(self, provider_data: ProviderCreate) -> Provider:
        """Create a new provider"""
        provider = Provider(
            name=provider_data.name,
            business_name=provider_data.business_name,
            default_billing_mode=provider_data.default_billing_mode,
            default_absence_policy=provider_data.default_absence_policy,
            bank_name=provider_data.bank_name,
            account_holder=provider_data.account_holder,
        )
        provider.account_number = provider_data.account_number  # This will encrypt the account number

        self.db.add(provider)
        self.db.commit()
        self.db.refresh(provider)
        logger.info(f"Provider {provider.id} created")
        return provider

    def get_provider(self, provider_id: int) -> Optional[Provider]:
        """Get a provider by ID"""
        return self.db.get(Provider, provider_id)

    def get_providers(self, skip: int = 0, limit: int = 100) -> List[Provider]:
        """Get a list of providers"""
        return list(self.db.exec(
            select(Provider).order_by(Provider.id).offset(skip).limit(limit)
        ).all())

    def update_provider(self, provider_id: int, provider_data: ProviderUpdate) -> Optional[Provider]:
        """
        Update a provider.

        Contracts keep the defaults captured in their policy snapshot; only
        contracts created afterwards see the new values.
        """
        provider = self.get_provider(provider_id)
        if not provider:
            return None

        update_data = provider_data.model_dump(exclude_unset=True)
        account_number = update_data.pop("account_number", None)
        for key, value in update_data.items():
            setattr(provider, key, value)
        if "account_number" in provider_data.model_fields_set:
            provider.account_number = account_number

        provider.touch()
        self.db.add(provider)
        self.db.commit()
        self.db.refresh(provider)
        return provider
