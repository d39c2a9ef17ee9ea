"""
ORM-level immutability and uniqueness guarantees.

- Decision-trail entries cannot be updated or deleted
- Validation requests cannot be deleted
- Audit events cannot be updated or deleted
- One entry per level and per validator on a request
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from validation_kernel.exceptions import ImmutabilityViolationError
from validation_kernel.models.audit_event import AuditEvent
from validation_kernel.models.validation_request import (
    ValidationEntryModel,
    ValidationRequestModel,
)

WORKSPACE = "ws-test"


@pytest.fixture
def decided_request(workflow_service, expense_ladder):
    request = workflow_service.create_validation_request(
        WORKSPACE, "expense", "EXP-1", {"total": "500"}, amount="500",
    )
    workflow_service.process_validation(request.request_id, "alice", "approved")
    return request


def load_request(session, request_id):
    return session.execute(
        select(ValidationRequestModel).where(ValidationRequestModel.request_id == request_id)
    ).scalar_one()


class TestEntryImmutability:

    def test_entry_update_rejected(self, session, decided_request):
        entry = load_request(session, decided_request.request_id).entries[0]
        entry.comment = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ValidationEntry"

    def test_entry_delete_rejected(self, session, decided_request):
        entry = load_request(session, decided_request.request_id).entries[0]
        session.delete(entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_request_delete_rejected(self, session, decided_request):
        session.delete(load_request(session, decided_request.request_id))

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type in {"ValidationRequest", "ValidationEntry"}


class TestAuditImmutability:

    def test_audit_update_rejected(self, session, decided_request):
        event = session.execute(select(AuditEvent).order_by(AuditEvent.seq).limit(1)).scalar_one()
        event.actor_id = "someone-else"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "AuditEvent"

    def test_audit_delete_rejected(self, session, decided_request):
        event = session.execute(select(AuditEvent).limit(1)).scalar_one()
        session.delete(event)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestTrailConstraints:

    def _entry(self, request_id, *, sequence, level, validated_by):
        return ValidationEntryModel(
            validation_id=uuid4(),
            request_id=request_id,
            sequence=sequence,
            validated_by=validated_by,
            decision="approved",
            level=level,
            validated_at=datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc),
            entry_hash="0" * 64,
        )

    def test_second_entry_at_same_level_rejected(self, session, decided_request):
        session.add(self._entry(decided_request.request_id, sequence=2, level="level_1", validated_by="bob"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_second_entry_by_same_validator_rejected(self, session, decided_request):
        session.add(self._entry(decided_request.request_id, sequence=2, level="level_2", validated_by="alice"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_sequence_is_unique(self, session, decided_request):
        session.add(self._entry(decided_request.request_id, sequence=1, level="level_2", validated_by="bob"))
        with pytest.raises(IntegrityError):
            session.flush()
