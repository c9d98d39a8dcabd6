# backend/treatbook/repositories/treatment_repository.py
"""Treatment Repository for Treatbook."""

from typing import List

from sqlalchemy.orm import Session

from ..models.treatment import Treatment
from .base_repository import BaseRepository


class TreatmentRepository(BaseRepository[Treatment]):
    def __init__(self, db: Session):
        super().__init__(db, Treatment)

    def list_available(self) -> List[Treatment]:
        return self._execute_query(
            self._build_query().filter(Treatment.available.is_(True)).order_by(Treatment.name)
        )
