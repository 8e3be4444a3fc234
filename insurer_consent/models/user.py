import uuid
from sqlalchemy import Boolean, Column, Text, Uuid, Index
from insurer_consent.db.base import Base
from insurer_consent.db.types import UTCDateTime


class User(Base):
    """Resource owner directory. Read-only from this service."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False)
    cross_tenant = Column(Boolean, nullable=False, default=False)

    username = Column(Text, nullable=True)
    cpf = Column(Text, nullable=False)
    cnpj = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, nullable=True)

Index("idx_users_cpf", User.cpf)
Index("idx_users_cnpj", User.cnpj)
