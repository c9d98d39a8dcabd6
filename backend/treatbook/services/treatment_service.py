# backend/treatbook/services/treatment_service.py
"""Treatment catalogue service."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException
from ..repositories import RepositoryFactory
from ..repositories.treatment_repository import TreatmentRepository
from ..schemas.base_responses import SuccessResponse
from ..schemas.user import TreatmentCreateRequest, TreatmentResponse
from .base import BaseService

logger = logging.getLogger(__name__)


class TreatmentService(BaseService):
    def __init__(self, db: Session, repository: Optional[TreatmentRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_treatment_repository(db)

    @BaseService.measure_operation("create_treatment")
    def create_treatment(self, data: TreatmentCreateRequest) -> TreatmentResponse:
        with self.transaction():
            treatment = self.repository.create(**data.model_dump())
            self.log_operation("create_treatment", treatment_id=treatment.id)
        return TreatmentResponse.model_validate(treatment)

    def list_available(self) -> List[TreatmentResponse]:
        return [TreatmentResponse.model_validate(t) for t in self.repository.list_available()]

    @BaseService.measure_operation("delete_treatment")
    def delete_treatment(self, treatment_id: str) -> SuccessResponse:
        """
        Remove a treatment from the catalogue.

        Existing appointments keep their treatment snapshot.
        """
        with self.transaction():
            if not self.repository.delete(treatment_id):
                raise NotFoundException(
                    "Treatment not found",
                    code="TREATMENT_NOT_FOUND",
                    details={"treatment_id": treatment_id},
                )
            self.log_operation("delete_treatment", treatment_id=treatment_id)
        return SuccessResponse(message="Treatment deleted successfully")
