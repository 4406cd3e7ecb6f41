from __future__ import annotations
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, func

Base = declarative_base()


class User(Base):
    """Staff or client login account. Only id and role matter to the access core."""
    __tablename__ = 'users'
    ROLE_ADMIN = 'admin'
    ROLE_PROVIDER = 'provider'
    ROLE_RECEPTION = 'reception'
    ROLE_CLIENT = 'client'
    ALL_ROLES = (ROLE_ADMIN, ROLE_PROVIDER, ROLE_RECEPTION, ROLE_CLIENT)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_CLIENT, index=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'email': self.email, 'role': self.role}
