from typing import Optional
from sqlmodel import Field
from src.api.common.models.base import BaseModel, TimestampMixin
from src.api.common.utils.encryption import encrypt_data, decrypt_data, normalize_phone


class Client(BaseModel, TimestampMixin, table=True):
    """
    Client model with encrypted contact information
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    # Owning provider
    provider_id: int = Field(foreign_key="provider.id", index=True)

    name: str

    # Encrypted phone numbers (digits only)
    encrypted_phone: Optional[str] = None
    guardian_name: Optional[str] = None
    encrypted_guardian_phone: Optional[str] = None

    is_active: bool = Field(default=True, index=True)

    # Properties to access encrypted data
    @property
    def phone(self) -> str:
        """Get decrypted phone"""
        return decrypt_data(self.encrypted_phone)

    @phone.setter
    def phone(self, value: Optional[str]):
        """Set encrypted phone"""
        self.encrypted_phone = encrypt_data(normalize_phone(value)) or None

    @property
    def guardian_phone(self) -> str:
        """Get decrypted guardian phone"""
        return decrypt_data(self.encrypted_guardian_phone)

    @guardian_phone.setter
    def guardian_phone(self, value: Optional[str]):
        """Set encrypted guardian phone"""
        self.encrypted_guardian_phone = encrypt_data(normalize_phone(value)) or None

    @property
    def contact_phone(self) -> str:
        """Phone invoices are sent to: the guardian's when present"""
        return self.guardian_phone or self.phone

    class Config:
        from_attributes = True
