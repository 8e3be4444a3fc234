from sqlalchemy import JSON, Column, Integer, LargeBinary, String, Text
from insurer_consent.db.base import Base
from insurer_consent.db.types import UTCDateTime


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    # (namespace, id) is the uniqueness constraint the atomic claim relies on
    namespace = Column(Text, primary_key=True)   # "<tenant_id>:<client_id>"
    id = Column(Text, primary_key=True)          # X-Idempotency-Key

    state = Column(String(16), nullable=False)   # PENDING | COMPLETED
    request_fingerprint = Column(String(64), nullable=False)
    status_code = Column(Integer, nullable=True)
    response_body = Column(LargeBinary, nullable=True)
    response_headers = Column(JSON, nullable=True)  # replayed with the body, e.g. Location

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
