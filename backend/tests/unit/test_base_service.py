"""BaseService transaction handling."""

from unittest.mock import Mock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from treatbook.core.exceptions import (
    ConflictException,
    NotFoundException,
    RepositoryException,
    ServiceException,
)
from treatbook.services.base import BaseService


class _Service(BaseService):
    @BaseService.measure_operation("noop")
    def noop(self):
        return "ok"


@pytest.fixture
def mock_db():
    return Mock(spec=Session)


def test_commit_on_success(mock_db):
    service = _Service(mock_db)

    with service.transaction():
        pass

    mock_db.commit.assert_called_once()
    mock_db.rollback.assert_not_called()


def test_storage_errors_become_service_exception(mock_db):
    service = _Service(mock_db)

    with pytest.raises(ServiceException) as exc_info:
        with service.transaction():
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

    assert exc_info.value.message.startswith("Database operation failed")
    mock_db.rollback.assert_called_once()
    mock_db.commit.assert_not_called()


def test_repository_errors_become_service_exception(mock_db):
    with pytest.raises(ServiceException):
        with _Service(mock_db).transaction():
            raise RepositoryException("Failed to create")


def test_constraint_violation_on_commit_is_a_conflict(mock_db):
    mock_db.commit.side_effect = IntegrityError(
        "INSERT", {}, Exception("UNIQUE constraint failed")
    )

    with pytest.raises(ConflictException) as exc_info:
        with _Service(mock_db).transaction():
            pass

    assert exc_info.value.code == "CONCURRENT_UPDATE"
    assert exc_info.value.status_code == 409
    mock_db.rollback.assert_called_once()


def test_constraint_violation_on_flush_is_a_conflict(mock_db):
    with pytest.raises(ConflictException):
        with _Service(mock_db).transaction():
            try:
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
            except IntegrityError as e:
                raise RepositoryException("Failed to write User") from e


def test_domain_errors_propagate_after_rollback(mock_db):
    with pytest.raises(NotFoundException):
        with _Service(mock_db).transaction():
            raise NotFoundException("Appointment not found")

    mock_db.rollback.assert_called_once()


def test_measure_operation_records_metrics(mock_db):
    service = _Service(mock_db)
    service.reset_metrics()

    assert service.noop() == "ok"

    metrics = service.get_metrics()
    assert metrics["noop"]["count"] == 1
    assert metrics["noop"]["success_count"] == 1
