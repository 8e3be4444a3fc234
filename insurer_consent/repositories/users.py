from typing import Optional
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from insurer_consent.models.user import User

def find_by_document(
    db: Session,
    *,
    tenant_id: str,
    cpf: Optional[str] = None,
    cnpj: Optional[str] = None,
) -> Optional[User]:
    if not cpf and not cnpj:
        return None
    stmt = select(User).where(or_(User.tenant_id == tenant_id, User.cross_tenant.is_(True)))
    if cpf:
        stmt = stmt.where(User.cpf == cpf)
    if cnpj:
        stmt = stmt.where(User.cnpj == cnpj)
    return db.execute(stmt.limit(1)).scalars().first()
