from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class UserRole(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class User(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole = UserRole.BUYER
    balance: Decimal = Decimal('0')

    def public_profile(self) -> dict:
        """Fields safe to share with the other side of a conversation."""
        return {
            "id": str(self.id),
            "fullName": self.full_name,
            "role": self.role.value
        }
