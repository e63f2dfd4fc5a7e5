"""Orquestrador de agendamentos.

Compõe disponibilidade, conflitos, recorrência e ciclo de vida, e é dono
da fronteira transacional. Caminho de escrita:

    cota -> leituras fora da transação (config, expediente, bloqueios)
         -> transação: trava o profissional, lê agendamentos da janela,
            valida, grava, audita
         -> commit -> hooks (lembretes, eventos)

Conflito de escrita no banco (``StoreConflictError``) ganha UMA nova
tentativa; na segunda vira ``BookingConflictError``.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, TypeVar

from booking_engine.core.errors import (
    BookingConflictError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
    OverrideNotAllowedError,
    StoreConflictError,
)
from booking_engine.core.logging import get_logger
from booking_engine.core.settings import settings
from booking_engine.models.appointment import (
    Appointment,
    AppointmentServiceLine,
    AppointmentStatus,
    CancellationReason,
)
from booking_engine.services.availability import (
    DayAvailability,
    compute_availability,
    compute_availability_range,
    validate_date_range,
)
from booking_engine.services.calendar import (
    BlockedTimeEntry,
    BookedSlot,
    CalendarSnapshot,
    ProfessionalAvailabilityConfig,
    WorkingHoursTemplate,
)
from booking_engine.services.conflict_checker import (
    Conflict,
    ConflictResult,
    ConflictType,
    ProposedBooking,
    Severity,
    check_conflicts,
)
from booking_engine.services.lifecycle import (
    TransitionResult,
    apply_reschedule,
    apply_transition,
    assert_reschedulable,
    run_creation_hooks,
    run_reschedule_hooks,
    run_transition_hooks,
)
from booking_engine.services.ports import (
    APPOINTMENTS_PER_MONTH,
    Actor,
    AppointmentStore,
    CalendarReader,
    Clock,
    EventPublisher,
    ReminderScheduler,
    ServiceCatalog,
    ServiceInfo,
    TenantQuota,
)
from booking_engine.services.recurrence import (
    OccurrenceOutcome,
    RecurrencePattern,
    SeriesPolicy,
    SeriesResult,
    generate_occurrences,
    generate_recurrence_group_id,
)
from booking_engine.services.time_ranges import TimeRange
from booking_engine.utils.tz import ensure_aware_utc, iso_utc, local_day_bounds

T = TypeVar("T")

log = get_logger(component="scheduler")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ServiceLineRequest:
    service_id: str
    quantity: int = 1


@dataclass
class BookingRequest:
    tenant_id: str
    client_id: str
    professional_id: str
    scheduled_at: datetime
    services: list[ServiceLineRequest]
    allow_warnings: bool = False
    skip_conflict_check: bool = False


@dataclass
class BookingResult:
    appointment: Appointment
    conflicts: ConflictResult = field(default_factory=ConflictResult)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _PricedServices:
    lines: list[tuple[ServiceInfo, int]]
    total_duration: int
    total_price: Decimal


@dataclass(frozen=True)
class _WriteContext:
    config: ProfessionalAvailabilityConfig
    working_hours: WorkingHoursTemplate
    blocked: list[BlockedTimeEntry]
    auto_confirm: bool


def _primary_reason(result: ConflictResult) -> str | None:
    errors = [c for c in result.conflicts if c.severity == Severity.ERROR]
    first = (errors or list(result.conflicts) or [None])[0]
    return first.type.value if first else None


class Scheduler:
    def __init__(
        self,
        store: AppointmentStore,
        calendar: CalendarReader,
        catalog: ServiceCatalog,
        quota: TenantQuota,
        reminders: ReminderScheduler,
        events: EventPublisher,
        clock: Clock = _utcnow,
        *,
        read_concurrency: int | None = None,
        retry_backoff_seconds: float | None = None,
        max_occurrences: int | None = None,
        max_range_days: int | None = None,
    ) -> None:
        self.store = store
        self.calendar = calendar
        self.catalog = catalog
        self.quota = quota
        self.reminders = reminders
        self.events = events
        self.clock = clock
        self.read_concurrency = (
            settings.CALENDAR_READ_CONCURRENCY
            if read_concurrency is None
            else read_concurrency
        )
        self.retry_backoff_seconds = (
            settings.CONFLICT_RETRY_BACKOFF_SECONDS
            if retry_backoff_seconds is None
            else retry_backoff_seconds
        )
        self.max_occurrences = max_occurrences or settings.RECURRENCE_MAX_OCCURRENCES
        self.max_range_days = max_range_days or settings.AVAILABILITY_MAX_RANGE_DAYS

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _fan_out(self, calls: Sequence[Callable[[], Any]]) -> list[Any]:
        """Roda leituras independentes; junta todas antes de calcular."""
        if self.read_concurrency <= 1 or len(calls) <= 1:
            return [call() for call in calls]
        workers = min(self.read_concurrency, len(calls))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(call) for call in calls]
            return [f.result() for f in futures]

    @staticmethod
    def _aware(dt: datetime) -> datetime:
        try:
            return ensure_aware_utc(dt)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

    @staticmethod
    def _guard_skip(skip_conflict_check: bool, actor: Actor) -> None:
        if skip_conflict_check and not actor.can_override:
            raise OverrideNotAllowedError(
                "Apenas administradores podem ignorar a verificação de conflitos",
                actor_role=actor.role,
            )

    def _price(
        self, tenant_id: str, lines: Sequence[ServiceLineRequest]
    ) -> _PricedServices:
        if not lines:
            raise InvalidRequestError("Informe ao menos um serviço")
        for line in lines:
            if line.quantity < 1:
                raise InvalidRequestError(
                    "Quantidade deve ser >= 1", service_id=line.service_id
                )

        infos = self.catalog.get_services(tenant_id, [ln.service_id for ln in lines])
        priced = [(info, ln.quantity) for info, ln in zip(infos, lines, strict=True)]
        return _PricedServices(
            lines=priced,
            total_duration=sum(i.duration_minutes * q for i, q in priced),
            total_price=sum((i.price * q for i, q in priced), Decimal("0")),
        )

    def _resolve_duration(
        self,
        tenant_id: str,
        requested_duration: int | None,
        service_ids: Sequence[str] | None,
    ) -> int:
        if requested_duration is not None:
            return requested_duration
        if not service_ids:
            raise InvalidRequestError("Informe a duração ou os serviços desejados")
        return self._price(
            tenant_id, [ServiceLineRequest(sid) for sid in service_ids]
        ).total_duration

    def _load_write_context(
        self, tenant_id: str, professional_id: str, span: TimeRange
    ) -> _WriteContext:
        config = self.calendar.get_config(tenant_id, professional_id)
        window = span.widen(config.buffer_before, config.buffer_after)
        working_hours, blocked, policy = self._fan_out(
            [
                lambda: self.calendar.get_working_hours(tenant_id, professional_id),
                lambda: self.calendar.get_blocked_times(
                    tenant_id, professional_id, window.start, window.end
                ),
                lambda: self.calendar.get_tenant_policy(tenant_id),
            ]
        )
        return _WriteContext(config, working_hours, blocked, policy.auto_confirm)

    def _read_snapshot(
        self,
        tenant_id: str,
        professional_id: str,
        config: ProfessionalAvailabilityConfig,
        window: TimeRange,
        concurrent: bool = True,
    ) -> CalendarSnapshot:
        window = window.widen(config.buffer_before, config.buffer_after)
        calls = [
            lambda: self.calendar.get_working_hours(tenant_id, professional_id),
            lambda: self.calendar.get_blocked_times(
                tenant_id, professional_id, window.start, window.end
            ),
            lambda: self.calendar.get_appointments(
                tenant_id, professional_id, window.start, window.end
            ),
        ]
        if concurrent:
            working_hours, blocked, appointments = self._fan_out(calls)
        else:
            working_hours, blocked, appointments = [call() for call in calls]
        return CalendarSnapshot(working_hours, blocked, appointments)

    def _validate(
        self,
        tenant_id: str,
        professional_id: str,
        rng: TimeRange,
        ctx: _WriteContext,
        actor: Actor,
        *,
        allow_warnings: bool = False,
        skip_conflict_check: bool = False,
        exclude_appointment_id: str | None = None,
        extra_booked: Iterable[Any] = (),
    ) -> ConflictResult:
        """Dentro da transação, depois da trava do profissional."""
        if skip_conflict_check:
            log.warning(
                "scheduler.conflict_check_skipped",
                tenant_id=tenant_id,
                professional_id=professional_id,
                actor_id=actor.id,
                start=iso_utc(rng.start),
            )
            return ConflictResult()

        window = rng.widen(ctx.config.buffer_before, ctx.config.buffer_after)
        booked = self.store.find_by_professional_and_date_range(
            tenant_id, professional_id, window.start, window.end
        )
        snapshot = CalendarSnapshot(
            ctx.working_hours, ctx.blocked, [*booked, *extra_booked]
        )
        result = check_conflicts(
            ProposedBooking(professional_id, rng, exclude_appointment_id),
            snapshot,
            ctx.config,
            self.clock(),
            allow_past=actor.can_override,
        )
        if result.blocks_booking(allow_warnings):
            raise BookingConflictError(result)
        return result

    def _with_retry(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except StoreConflictError as exc:
            log.warning(
                "scheduler.store_conflict_retry", operation=operation, error=exc.message
            )
        time.sleep(self.retry_backoff_seconds)

        try:
            return fn()
        except StoreConflictError as exc:
            log.warning(
                "scheduler.store_conflict", operation=operation, error=exc.message
            )
            raise BookingConflictError(
                ConflictResult(
                    (
                        Conflict(
                            ConflictType.OVERLAP,
                            Severity.ERROR,
                            "Horário reservado por outra requisição ao mesmo tempo",
                        ),
                    )
                )
            ) from exc

    def _new_appointment(
        self,
        request: BookingRequest,
        rng: TimeRange,
        priced: _PricedServices,
        auto_confirm: bool,
        *,
        recurrence_group_id: str | None = None,
        recurrence_index: int | None = None,
    ) -> Appointment:
        now = self.clock()
        status = AppointmentStatus.CONFIRMED if auto_confirm else AppointmentStatus.PENDING
        ap = Appointment(
            tenant_id=request.tenant_id,
            client_id=request.client_id,
            professional_id=request.professional_id,
            status=status,
            scheduled_at=rng.start,
            end_time=rng.end,
            total_duration=priced.total_duration,
            total_price=priced.total_price,
            recurrence_group_id=recurrence_group_id,
            recurrence_index=recurrence_index,
            confirmed_at=now if auto_confirm else None,
        )
        ap.services = [
            AppointmentServiceLine(
                service_id=info.id,
                position=pos,
                duration=info.duration_minutes,
                price=info.price,
                quantity=qty,
            )
            for pos, (info, qty) in enumerate(priced.lines)
        ]
        return ap

    def _audit_create(
        self,
        ap: Appointment,
        actor: Actor,
        result: ConflictResult,
        skip_conflict_check: bool,
    ) -> None:
        self.store.record_audit(
            tenant_id=ap.tenant_id,
            actor_id=actor.id,
            action="CREATE",
            entity_id=ap.id,
            details={
                "scheduled_at": iso_utc(ap.scheduled_at),
                "accepted_warnings": [c.type.value for c in result.conflicts],
                "recurrence_group_id": ap.recurrence_group_id,
            },
        )
        if skip_conflict_check:
            self.store.record_audit(
                tenant_id=ap.tenant_id,
                actor_id=actor.id,
                action="SKIP_CONFLICT_CHECK",
                entity_id=ap.id,
                details={"actor_role": actor.role},
            )

    # ------------------------------------------------------------------
    # criação
    # ------------------------------------------------------------------

    def create_appointment(
        self, request: BookingRequest, actor: Actor | None = None
    ) -> BookingResult:
        actor = actor or Actor()
        self._guard_skip(request.skip_conflict_check, actor)
        self.quota.enforce_limit(request.tenant_id, APPOINTMENTS_PER_MONTH, 1)

        priced = self._price(request.tenant_id, request.services)
        rng = TimeRange.of(self._aware(request.scheduled_at), priced.total_duration)
        ctx = self._load_write_context(request.tenant_id, request.professional_id, rng)

        def attempt() -> tuple[Appointment, ConflictResult]:
            with self.store.transaction():
                self.store.lock_professional(request.tenant_id, request.professional_id)
                result = self._validate(
                    request.tenant_id,
                    request.professional_id,
                    rng,
                    ctx,
                    actor,
                    allow_warnings=request.allow_warnings,
                    skip_conflict_check=request.skip_conflict_check,
                )
                ap = self.store.create(
                    self._new_appointment(request, rng, priced, ctx.auto_confirm)
                )
                self._audit_create(ap, actor, result, request.skip_conflict_check)
            return ap, result

        ap, result = self._with_retry("create_appointment", attempt)
        warnings = run_creation_hooks(ap, self.reminders, self.events)
        log.info(
            "appointment.created",
            appointment_id=ap.id,
            tenant_id=ap.tenant_id,
            professional_id=ap.professional_id,
            status=ap.status.value,
            scheduled_at=iso_utc(ap.scheduled_at),
        )
        return BookingResult(ap, result, warnings)

    def create_recurring_series(
        self,
        request: BookingRequest,
        pattern: RecurrencePattern,
        policy: SeriesPolicy = SeriesPolicy.BEST_EFFORT,
        actor: Actor | None = None,
        excluded_dates: Iterable[date] | None = None,
    ) -> SeriesResult:
        actor = actor or Actor()
        self._guard_skip(request.skip_conflict_check, actor)

        priced = self._price(request.tenant_id, request.services)
        first = TimeRange.of(self._aware(request.scheduled_at), priced.total_duration)
        config = self.calendar.get_config(request.tenant_id, request.professional_id)
        occurrences = generate_occurrences(
            pattern, first, config.timezone, self.max_occurrences, excluded_dates
        )

        # cota antes de qualquer escrita, pela série inteira
        self.quota.enforce_limit(
            request.tenant_id, APPOINTMENTS_PER_MONTH, len(occurrences)
        )

        span = TimeRange(occurrences[0].start, occurrences[-1].end)
        ctx = self._load_write_context(request.tenant_id, request.professional_id, span)
        group_id = generate_recurrence_group_id()

        if policy == SeriesPolicy.ALL_OR_NOTHING:
            outcomes, created = self._series_all_or_nothing(
                request, occurrences, priced, ctx, actor, group_id
            )
        else:
            outcomes, created = self._series_best_effort(
                request, occurrences, priced, ctx, actor, group_id
            )

        warnings: list[str] = []
        for ap in created:
            warnings.extend(run_creation_hooks(ap, self.reminders, self.events))

        log.info(
            "appointment.series_created",
            recurrence_group_id=group_id,
            policy=policy.value,
            created=len(created),
            skipped=len(outcomes) - len(created),
        )
        return SeriesResult(group_id, policy, outcomes, warnings)

    def _series_all_or_nothing(
        self,
        request: BookingRequest,
        occurrences: list[TimeRange],
        priced: _PricedServices,
        ctx: _WriteContext,
        actor: Actor,
        group_id: str,
    ) -> tuple[list[OccurrenceOutcome], list[Appointment]]:
        def attempt():
            outcomes: list[OccurrenceOutcome] = []
            created: list[Appointment] = []
            with self.store.transaction():
                self.store.lock_professional(request.tenant_id, request.professional_id)

                # valida TODAS antes de gravar qualquer uma
                failures: list[tuple[int, ConflictResult]] = []
                accepted: list[ConflictResult] = []
                previous: list[BookedSlot] = []
                for i, occ in enumerate(occurrences):
                    try:
                        result = self._validate(
                            request.tenant_id,
                            request.professional_id,
                            occ,
                            ctx,
                            actor,
                            allow_warnings=request.allow_warnings,
                            skip_conflict_check=request.skip_conflict_check,
                            extra_booked=previous,
                        )
                    except BookingConflictError as exc:
                        failures.append((i, exc.conflict_result))
                        outcomes.append(
                            OccurrenceOutcome(
                                i,
                                occ,
                                created=False,
                                reason=_primary_reason(exc.conflict_result),
                                conflicts=exc.conflict_result.to_dict()["conflicts"],
                            )
                        )
                        continue
                    accepted.append(result)
                    previous.append(
                        BookedSlot(
                            f"occurrence-{i}",
                            occ.start,
                            occ.end,
                            AppointmentStatus.PENDING,
                        )
                    )
                    outcomes.append(OccurrenceOutcome(i, occ, created=False))

                if failures:
                    index, result = failures[0]
                    outcomes = [
                        o if o.reason else OccurrenceOutcome(
                            o.index, o.range, created=False, reason="SERIES_ABORTED"
                        )
                        for o in outcomes
                    ]
                    raise BookingConflictError(
                        result,
                        f"Ocorrência {index + 1} da série conflita; nada foi criado",
                        occurrence_index=index,
                        outcomes=outcomes,
                    )

                for i, (occ, result) in enumerate(zip(occurrences, accepted, strict=True)):
                    ap = self.store.create(
                        self._new_appointment(
                            request,
                            occ,
                            priced,
                            ctx.auto_confirm,
                            recurrence_group_id=group_id,
                            recurrence_index=i,
                        )
                    )
                    self._audit_create(ap, actor, result, request.skip_conflict_check)
                    outcomes[i] = OccurrenceOutcome(
                        i, occ, created=True, appointment_id=ap.id
                    )
                    created.append(ap)
            return outcomes, created

        return self._with_retry("create_recurring_series", attempt)

    def _series_best_effort(
        self,
        request: BookingRequest,
        occurrences: list[TimeRange],
        priced: _PricedServices,
        ctx: _WriteContext,
        actor: Actor,
        group_id: str,
    ) -> tuple[list[OccurrenceOutcome], list[Appointment]]:
        outcomes: list[OccurrenceOutcome] = []
        created: list[Appointment] = []

        for i, occ in enumerate(occurrences):

            def attempt(i=i, occ=occ):
                with self.store.transaction():
                    self.store.lock_professional(
                        request.tenant_id, request.professional_id
                    )
                    result = self._validate(
                        request.tenant_id,
                        request.professional_id,
                        occ,
                        ctx,
                        actor,
                        allow_warnings=request.allow_warnings,
                        skip_conflict_check=request.skip_conflict_check,
                    )
                    ap = self.store.create(
                        self._new_appointment(
                            request,
                            occ,
                            priced,
                            ctx.auto_confirm,
                            recurrence_group_id=group_id,
                            recurrence_index=i,
                        )
                    )
                    self._audit_create(ap, actor, result, request.skip_conflict_check)
                return ap

            try:
                ap = self._with_retry("create_recurring_series", attempt)
            except BookingConflictError as exc:
                outcomes.append(
                    OccurrenceOutcome(
                        i,
                        occ,
                        created=False,
                        reason=_primary_reason(exc.conflict_result),
                        conflicts=exc.conflict_result.to_dict()["conflicts"],
                    )
                )
                continue
            outcomes.append(OccurrenceOutcome(i, occ, created=True, appointment_id=ap.id))
            created.append(ap)

        return outcomes, created

    # ------------------------------------------------------------------
    # reagendamento e transições
    # ------------------------------------------------------------------

    def _get(self, tenant_id: str, appointment_id: str, *, for_update: bool = False):
        ap = self.store.find_by_id(tenant_id, appointment_id, for_update=for_update)
        if ap is None:
            raise NotFoundError("Agendamento", appointment_id)
        return ap

    def reschedule_appointment(
        self,
        tenant_id: str,
        appointment_id: str,
        new_start: datetime,
        actor: Actor | None = None,
        *,
        reason: str | None = None,
        allow_warnings: bool = False,
        skip_conflict_check: bool = False,
    ) -> BookingResult:
        actor = actor or Actor()
        self._guard_skip(skip_conflict_check, actor)
        new_start = self._aware(new_start)

        current = self._get(tenant_id, appointment_id)
        assert_reschedulable(current)
        professional_id = current.professional_id
        rng = TimeRange.of(new_start, current.total_duration)
        ctx = self._load_write_context(tenant_id, professional_id, rng)

        def attempt():
            with self.store.transaction():
                ap = self._get(tenant_id, appointment_id, for_update=True)
                self.store.lock_professional(tenant_id, professional_id)
                result = self._validate(
                    tenant_id,
                    professional_id,
                    rng,
                    ctx,
                    actor,
                    allow_warnings=allow_warnings,
                    skip_conflict_check=skip_conflict_check,
                    exclude_appointment_id=ap.id,
                )
                previous_start = apply_reschedule(ap, rng.start, rng.end, self.clock(), reason)
                self.store.update(ap)
                self.store.record_audit(
                    tenant_id=tenant_id,
                    actor_id=actor.id,
                    action="RESCHEDULE",
                    entity_id=ap.id,
                    details={
                        "from": iso_utc(previous_start),
                        "to": iso_utc(rng.start),
                        "reason": reason,
                    },
                )
                if skip_conflict_check:
                    self.store.record_audit(
                        tenant_id=tenant_id,
                        actor_id=actor.id,
                        action="SKIP_CONFLICT_CHECK",
                        entity_id=ap.id,
                        details={"actor_role": actor.role},
                    )
            return ap, previous_start, result

        ap, previous_start, result = self._with_retry("reschedule_appointment", attempt)
        warnings = run_reschedule_hooks(ap, previous_start, self.reminders, self.events)
        log.info(
            "appointment.rescheduled",
            appointment_id=ap.id,
            previous_start=iso_utc(previous_start),
            scheduled_at=iso_utc(ap.scheduled_at),
        )
        return BookingResult(ap, result, warnings)

    def _transition(
        self,
        tenant_id: str,
        appointment_id: str,
        target: AppointmentStatus,
        actor: Actor | None = None,
        *,
        reason: CancellationReason | None = None,
        details: str | None = None,
        expected: AppointmentStatus | None = None,
    ) -> TransitionResult:
        """
        ``expected``: status lido antes da trava; se mudou, a transição é recusada.
        """
        actor = actor or Actor()
        now = self.clock()
        with self.store.transaction():
            ap = self._get(tenant_id, appointment_id, for_update=True)
            if expected is not None and ap.status != expected:
                raise InvalidStatusTransitionError(
                    ap.status,
                    target,
                    f"Status mudou de {expected.value} para {ap.status.value}",
                )
            previous = apply_transition(ap, target, now, reason=reason, details=details)
            self.store.update(ap)
            self.store.record_audit(
                tenant_id=tenant_id,
                actor_id=actor.id,
                action=f"STATUS_{target.value}",
                entity_id=ap.id,
                details={
                    "from": previous.value,
                    "to": target.value,
                    "reason": reason.value if reason else None,
                },
            )

        warnings = run_transition_hooks(ap, previous, self.reminders, self.events)
        log.info(
            "appointment.status_changed",
            appointment_id=ap.id,
            previous_status=previous.value,
            status=target.value,
        )
        return TransitionResult(ap, previous, warnings)

    def cancel_appointment(
        self,
        tenant_id: str,
        appointment_id: str,
        reason: CancellationReason | None,
        details: str | None = None,
        actor: Actor | None = None,
        *,
        expected: AppointmentStatus | None = None,
    ) -> TransitionResult:
        return self._transition(
            tenant_id,
            appointment_id,
            AppointmentStatus.CANCELLED,
            actor,
            reason=reason,
            details=details,
            expected=expected,
        )

    def confirm(self, tenant_id: str, appointment_id: str, actor: Actor | None = None):
        return self._transition(
            tenant_id, appointment_id, AppointmentStatus.CONFIRMED, actor
        )

    def check_in(self, tenant_id: str, appointment_id: str, actor: Actor | None = None):
        return self._transition(tenant_id, appointment_id, AppointmentStatus.WAITING, actor)

    def start_service(
        self, tenant_id: str, appointment_id: str, actor: Actor | None = None
    ):
        return self._transition(
            tenant_id, appointment_id, AppointmentStatus.IN_PROGRESS, actor
        )

    def complete(self, tenant_id: str, appointment_id: str, actor: Actor | None = None):
        return self._transition(
            tenant_id, appointment_id, AppointmentStatus.COMPLETED, actor
        )

    def mark_no_show(
        self,
        tenant_id: str,
        appointment_id: str,
        actor: Actor | None = None,
        *,
        expected: AppointmentStatus | None = None,
    ):
        return self._transition(
            tenant_id, appointment_id, AppointmentStatus.NO_SHOW, actor, expected=expected
        )

    def get_appointment(self, tenant_id: str, appointment_id: str) -> Appointment:
        return self._get(tenant_id, appointment_id)

    def get_series(self, tenant_id: str, recurrence_group_id: str) -> list[Appointment]:
        appointments = self.store.find_by_recurrence_group(tenant_id, recurrence_group_id)
        if not appointments:
            raise NotFoundError("Série", recurrence_group_id)
        return appointments

    # ------------------------------------------------------------------
    # leitura
    # ------------------------------------------------------------------

    def get_availability(
        self,
        tenant_id: str,
        professional_id: str,
        day: date,
        requested_duration: int | None = None,
        service_ids: Sequence[str] | None = None,
    ) -> DayAvailability:
        duration = self._resolve_duration(tenant_id, requested_duration, service_ids)
        config = self.calendar.get_config(tenant_id, professional_id)
        start, end = local_day_bounds(day, config.timezone)
        snapshot = self._read_snapshot(
            tenant_id, professional_id, config, TimeRange(start, end)
        )
        return compute_availability(
            professional_id, day, duration, snapshot, config, self.clock()
        )

    def get_availability_range(
        self,
        tenant_id: str,
        professional_ids: Sequence[str],
        start_date: date,
        end_date: date,
        requested_duration: int | None = None,
        service_ids: Sequence[str] | None = None,
    ) -> list[DayAvailability]:
        validate_date_range(start_date, end_date, self.max_range_days)
        if not professional_ids:
            raise InvalidRequestError("Informe ao menos um profissional")
        duration = self._resolve_duration(tenant_id, requested_duration, service_ids)

        def load(professional_id: str):
            config = self.calendar.get_config(tenant_id, professional_id)
            start, _ = local_day_bounds(start_date, config.timezone)
            _, end = local_day_bounds(end_date, config.timezone)
            snapshot = self._read_snapshot(
                tenant_id,
                professional_id,
                config,
                TimeRange(start, end),
                concurrent=False,
            )
            return config, snapshot

        # uma leitura por profissional, em paralelo
        loaded = self._fan_out(
            [lambda pid=pid: load(pid) for pid in dict.fromkeys(professional_ids)]
        )
        calendars = dict(zip(dict.fromkeys(professional_ids), loaded, strict=True))
        return compute_availability_range(
            calendars,
            start_date,
            end_date,
            duration,
            self.clock(),
            self.max_range_days,
        )
