from uuid import UUID
from sqlmodel import SQLModel


class TokenData(SQLModel):
    """Claims this service relies on from a verified bearer token."""
    user_id: UUID
