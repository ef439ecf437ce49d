import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from licencias.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from licencias.schemas.enums import LicenseStatus
from licencias.services.lifecycle_manager import LifecycleManager, can_mutate_evidence, is_valid_transition
from licencias.services.radicado import RadicadoGenerator


async def _create(manager, payload, requester):
    return await manager.create_request(payload, requester.user_id)


@pytest.mark.asyncio
async def test_create_request_assigns_radicado_and_pending(lifecycle_manager, license_payload, requester):
    request = await _create(lifecycle_manager, license_payload, requester)

    assert request.estado == LicenseStatus.PENDING
    assert re.match(r"^LIC-2024-\d{9}$", request.radicado)
    assert request.user_id == requester.user_id
    assert request.created_by == requester.user_id
    assert request.evidences == []


@pytest.mark.asyncio
async def test_create_request_rejects_end_before_start(lifecycle_manager, license_payload, requester):
    license_payload.update(fecha_inicio="2024-01-10", fecha_finalizacion="2024-01-05")

    with pytest.raises(ValidationError, match="fecha_finalizacion"):
        await _create(lifecycle_manager, license_payload, requester)


@pytest.mark.asyncio
async def test_create_request_treats_blank_text_as_missing(lifecycle_manager, license_payload, requester):
    license_payload["nombres"] = "   "

    with pytest.raises(ValidationError) as exc_info:
        await _create(lifecycle_manager, license_payload, requester)
    assert exc_info.value.details["fields"] == ["nombres"]


@pytest.mark.asyncio
async def test_create_request_rejects_missing_and_malformed_fields(lifecycle_manager, license_payload, requester):
    del license_payload["cargo"]
    license_payload["fecha_inicio"] = "not-a-date"

    with pytest.raises(ValidationError) as exc_info:
        await _create(lifecycle_manager, license_payload, requester)
    assert set(exc_info.value.details["fields"]) == {"cargo", "fecha_inicio"}


@pytest.mark.asyncio
async def test_create_request_checks_hours_on_single_day(lifecycle_manager, license_payload, requester):
    license_payload.update(
        fecha_inicio="2024-01-10",
        fecha_finalizacion="2024-01-10",
        hora_inicio="14:00",
        hora_fin="08:00",
    )

    with pytest.raises(ValidationError, match="hora_fin"):
        await _create(lifecycle_manager, license_payload, requester)


@pytest.mark.asyncio
async def test_create_request_requires_replacement_name(lifecycle_manager, license_payload, requester):
    license_payload["reemplazo"] = True

    with pytest.raises(ValidationError, match="reemplazante"):
        await _create(lifecycle_manager, license_payload, requester)


@pytest.mark.asyncio
async def test_create_request_retries_radicado_collision(lifecycle_manager, license_repository, license_payload, requester):
    with patch.object(license_repository, "radicado_exists", AsyncMock(side_effect=[True, False])) as exists:
        request = await _create(lifecycle_manager, license_payload, requester)

    assert exists.await_count == 2
    assert request.radicado


@pytest.mark.asyncio
async def test_create_request_gives_up_after_bounded_collisions(license_repository, license_payload, requester, clock):
    manager = LifecycleManager(license_repository, RadicadoGenerator(max_attempts=3, clock=clock), clock=clock)

    with patch.object(license_repository, "radicado_exists", AsyncMock(return_value=True)) as exists, \
            patch.object(license_repository, "save", AsyncMock()) as save:
        with pytest.raises(ConflictError):
            await _create(manager, license_payload, requester)

    assert exists.await_count == 3
    save.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    [
        [LicenseStatus.IN_REVIEW, LicenseStatus.APPROVED],
        [LicenseStatus.IN_REVIEW, LicenseStatus.REJECTED],
        [LicenseStatus.IN_REVIEW, LicenseStatus.PENDING, LicenseStatus.IN_REVIEW],
    ],
)
async def test_reviewer_paths_persist_each_status(lifecycle_manager, license_repository, license_payload, requester, reviewer, path):
    request = await _create(lifecycle_manager, license_payload, requester)

    for target in path:
        updated = await lifecycle_manager.transition(request.id, target, reviewer)
        assert updated.estado == target
        reloaded = await license_repository.find_by_id(request.id)
        assert reloaded.estado == target


@pytest.mark.asyncio
async def test_requester_can_cancel_pending_request(lifecycle_manager, license_payload, requester):
    request = await _create(lifecycle_manager, license_payload, requester)

    updated = await lifecycle_manager.transition(request.id, LicenseStatus.CANCELLED, requester)

    assert updated.estado == LicenseStatus.CANCELLED


@pytest.mark.asyncio
async def test_requester_cannot_cancel_once_in_review(lifecycle_manager, license_payload, requester, admin):
    request = await _create(lifecycle_manager, license_payload, requester)
    await lifecycle_manager.transition(request.id, LicenseStatus.IN_REVIEW, admin)

    with pytest.raises(InvalidTransitionError):
        await lifecycle_manager.transition(request.id, LicenseStatus.CANCELLED, requester)


@pytest.mark.asyncio
async def test_reviewer_who_is_not_requester_cannot_cancel(lifecycle_manager, license_payload, requester, reviewer):
    request = await _create(lifecycle_manager, license_payload, requester)

    with pytest.raises(ForbiddenError):
        await lifecycle_manager.transition(request.id, LicenseStatus.CANCELLED, reviewer)


@pytest.mark.asyncio
async def test_requester_cannot_move_own_request_into_review(lifecycle_manager, license_payload, requester):
    request = await _create(lifecycle_manager, license_payload, requester)

    with pytest.raises(ForbiddenError):
        await lifecycle_manager.transition(request.id, LicenseStatus.IN_REVIEW, requester)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "setup, target",
    [
        ([LicenseStatus.IN_REVIEW, LicenseStatus.APPROVED], LicenseStatus.PENDING),
        ([LicenseStatus.IN_REVIEW, LicenseStatus.REJECTED], LicenseStatus.IN_REVIEW),
        ([LicenseStatus.CANCELLED], LicenseStatus.IN_REVIEW),
        ([], LicenseStatus.APPROVED),
        ([], LicenseStatus.REJECTED),
    ],
)
async def test_edges_outside_the_machine_are_rejected(lifecycle_manager, license_repository, license_payload, requester, admin, setup, target):
    request = await _create(lifecycle_manager, license_payload, requester)
    for status in setup:
        await lifecycle_manager.transition(request.id, status, admin)
    before = (await license_repository.find_by_id(request.id)).estado

    with pytest.raises(InvalidTransitionError):
        await lifecycle_manager.transition(request.id, target, admin)

    assert (await license_repository.find_by_id(request.id)).estado == before


@pytest.mark.asyncio
async def test_same_status_transition_is_idempotent(license_repository, license_payload, requester, admin):
    now = [datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)]
    manager = LifecycleManager(license_repository, RadicadoGenerator(), clock=lambda: now[0])
    request = await _create(manager, license_payload, requester)

    first = await manager.transition(request.id, LicenseStatus.IN_REVIEW, admin)
    first_updated = first.updated_at.replace(tzinfo=None)
    now[0] += timedelta(minutes=5)
    second = await manager.transition(request.id, LicenseStatus.IN_REVIEW, admin)

    assert second.estado == LicenseStatus.IN_REVIEW
    assert second.updated_at.replace(tzinfo=None) > first_updated
    events = await license_repository.list_status_events(request.id)
    assert [(e.from_status, e.to_status) for e in events] == [("pendiente", "en_revision")]


@pytest.mark.asyncio
async def test_transition_records_comment_and_event(lifecycle_manager, license_repository, license_payload, requester, reviewer):
    request = await _create(lifecycle_manager, license_payload, requester)
    await lifecycle_manager.transition(request.id, LicenseStatus.IN_REVIEW, reviewer)

    updated = await lifecycle_manager.transition(
        request.id, "Rechazado", reviewer, comment="  Falta soporte médico "
    )

    assert updated.estado == LicenseStatus.REJECTED
    assert updated.comentarios_rh == "Falta soporte médico"
    assert updated.updated_by == reviewer.user_id
    events = await license_repository.list_status_events(request.id)
    assert events[-1].to_status == "rechazada"
    assert events[-1].actor_id == reviewer.user_id


@pytest.mark.asyncio
async def test_transition_unknown_request(lifecycle_manager, admin):
    with pytest.raises(NotFoundError):
        await lifecycle_manager.transition(uuid4(), LicenseStatus.IN_REVIEW, admin)


@pytest.mark.asyncio
async def test_transition_unknown_status(lifecycle_manager, license_payload, requester, admin):
    request = await _create(lifecycle_manager, license_payload, requester)

    with pytest.raises(ValidationError):
        await lifecycle_manager.transition(request.id, "archivada", admin)


@pytest.mark.asyncio
async def test_review_scenario_ends_with_frozen_evidence(lifecycle_manager, evidence_store, fake_store, license_payload, requester, other_user, admin, sample_pdf_content):
    request = await _create(lifecycle_manager, license_payload, requester)
    assert request.estado == LicenseStatus.PENDING and request.radicado

    with pytest.raises(ForbiddenError):
        await lifecycle_manager.transition(request.id, LicenseStatus.APPROVED, other_user)

    in_review = await lifecycle_manager.transition(request.id, LicenseStatus.IN_REVIEW, admin)
    assert in_review.estado == LicenseStatus.IN_REVIEW
    approved = await lifecycle_manager.transition(request.id, LicenseStatus.APPROVED, admin)
    assert approved.estado == LicenseStatus.APPROVED

    with pytest.raises(InvalidStateError):
        await evidence_store.put(
            request.id, "soporte", "default", sample_pdf_content, "soporte.pdf", "application/pdf", requester
        )
    assert fake_store.calls == []


@pytest.mark.asyncio
async def test_authorize_read_allows_owner_and_elevated_roles(lifecycle_manager, license_payload, requester, other_user, reviewer, admin):
    request = await _create(lifecycle_manager, license_payload, requester)

    lifecycle_manager.authorize_read(request, requester)
    lifecycle_manager.authorize_read(request, reviewer)
    lifecycle_manager.authorize_read(request, admin)
    with pytest.raises(ForbiddenError) as exc_info:
        lifecycle_manager.authorize_read(request, other_user)
    assert exc_info.value.message == "Access denied"


@pytest.mark.parametrize(
    "status, expected",
    [
        (LicenseStatus.PENDING, True),
        (LicenseStatus.IN_REVIEW, True),
        (LicenseStatus.APPROVED, False),
        (LicenseStatus.REJECTED, False),
        (LicenseStatus.CANCELLED, False),
    ],
)
def test_can_mutate_evidence(status, expected):
    assert can_mutate_evidence(status) is expected
    assert LifecycleManager.can_mutate_evidence(status) is expected


def test_terminal_statuses_have_no_outgoing_edges():
    for terminal in (LicenseStatus.APPROVED, LicenseStatus.REJECTED, LicenseStatus.CANCELLED):
        for target in LicenseStatus:
            assert not is_valid_transition(terminal, target)


@pytest.mark.asyncio
async def test_list_requests_scopes_by_role(lifecycle_manager, license_payload, requester, other_user, reviewer):
    await _create(lifecycle_manager, license_payload, requester)
    await _create(lifecycle_manager, license_payload, requester)
    await _create(lifecycle_manager, license_payload, other_user)

    total, items = await lifecycle_manager.list_requests(requester)
    assert total == 2
    assert {item.user_id for item in items} == {requester.user_id}

    total, items = await lifecycle_manager.list_requests(reviewer)
    assert total == 3

    total, items = await lifecycle_manager.list_requests(reviewer, status="en revisión")
    assert total == 0 and items == []


@pytest.mark.asyncio
async def test_lookup_by_radicado(lifecycle_manager, license_payload, requester, other_user):
    request = await _create(lifecycle_manager, license_payload, requester)

    found = await lifecycle_manager.lookup_by_radicado(request.radicado.lower(), requester)
    assert found.id == request.id

    with pytest.raises(ForbiddenError):
        await lifecycle_manager.lookup_by_radicado(request.radicado, other_user)
    with pytest.raises(NotFoundError):
        await lifecycle_manager.lookup_by_radicado("LIC-2024-000000000", requester)
    with pytest.raises(ValidationError):
        await lifecycle_manager.lookup_by_radicado("radicado; drop table", requester)


@pytest.mark.asyncio
async def test_lookup_accepts_radicados_with_configured_prefix(license_repository, license_payload, requester, clock):
    manager = LifecycleManager(license_repository, RadicadoGenerator(prefix="rad_2", clock=clock), clock=clock)
    request = await _create(manager, license_payload, requester)

    assert request.radicado.startswith("RAD_2-2024-")
    found = await manager.lookup_by_radicado(request.radicado.lower(), requester)
    assert found.id == request.id
