from dataclasses import replace
from typing import Dict, FrozenSet, Union

from ..models import Appointment, AppointmentStatus
from ...exceptions import InvalidTransitionError

S = AppointmentStatus

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.PENDING: frozenset({S.ACCEPTED, S.CANCELLED}),
    S.SCHEDULED: frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW}),
    S.ACCEPTED: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

INITIAL_STATUSES = frozenset({S.SCHEDULED, S.PENDING})


def allowed_transitions(status: Union[str, AppointmentStatus]) -> FrozenSet[AppointmentStatus]:
    return ALLOWED_TRANSITIONS[AppointmentStatus(status)]


def can_transition(current: Union[str, AppointmentStatus], new: Union[str, AppointmentStatus]) -> bool:
    try:
        return AppointmentStatus(new) in allowed_transitions(current)
    except ValueError:
        return False


def apply_transition(appointment: Appointment, new_status: Union[str, AppointmentStatus]) -> Appointment:
    """Return a copy of ``appointment`` moved to ``new_status``.

    The input is never modified. Raises ``InvalidTransitionError`` for any
    move not listed in ``ALLOWED_TRANSITIONS``, including every move out of
    a terminal status.
    """
    try:
        target = AppointmentStatus(new_status)
    except ValueError:
        raise InvalidTransitionError(appointment.status.value, str(new_status))
    if target not in ALLOWED_TRANSITIONS[appointment.status]:
        raise InvalidTransitionError(appointment.status.value, target.value)
    return replace(appointment, status=target)


def accept(appointment: Appointment) -> Appointment:
    return apply_transition(appointment, S.ACCEPTED)


def cancel(appointment: Appointment) -> Appointment:
    return apply_transition(appointment, S.CANCELLED)


def complete(appointment: Appointment) -> Appointment:
    return apply_transition(appointment, S.COMPLETED)


def mark_no_show(appointment: Appointment) -> Appointment:
    return apply_transition(appointment, S.NO_SHOW)
