from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_engine.core.errors import NotFoundError
from booking_engine.models.service import Service
from booking_engine.services.ports import ServiceInfo


class SqlServiceCatalog:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_services(
        self, tenant_id: str, service_ids: Sequence[str]
    ) -> list[ServiceInfo]:
        rows = self.db.scalars(
            select(Service).where(
                Service.tenant_id == tenant_id,
                Service.id.in_(set(service_ids)),
                Service.is_active.is_(True),
            )
        ).all()
        by_id = {s.id: s for s in rows}

        result = []
        for sid in service_ids:
            svc = by_id.get(sid)
            if svc is None:
                raise NotFoundError("Serviço", sid)
            result.append(
                ServiceInfo(
                    id=svc.id,
                    name=svc.name,
                    duration_minutes=svc.duration_minutes,
                    price=svc.price,
                )
            )
        return result
