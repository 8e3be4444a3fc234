from insurer_consent.db.base import Base
from insurer_consent.db.session import engine
import insurer_consent.models.consent  # noqa: F401
import insurer_consent.models.idempotency  # noqa: F401
import insurer_consent.models.user  # noqa: F401

def init_db() -> None:
    Base.metadata.create_all(bind=engine)
