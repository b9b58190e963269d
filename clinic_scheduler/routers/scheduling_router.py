from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, Request
import logging
from datetime import datetime

from ..application.services.datetime_parsing import combine
from ..application.services.query_engine import QueryOptions
from ..application.services.scheduling_service import SchedulingService
from ..application.services.slot_generator import first_available_slot
from ..exceptions import DateParseError, MissingIdentifierError
from ..schemas.scheduling import (
    AppointmentResponse,
    BookingRequest,
    MessageResponse,
    RescheduleRequest,
    RescheduleResponse,
    SlotsResponse,
    StatsResponse,
    StatusChangeRequest,
    TimeSlotResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_scheduling_service(request: Request) -> SchedulingService:
    service = getattr(request.app.state, "scheduling_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Scheduling service is not initialized")
    return service


def _parse_day(value: str):
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise DateParseError(value, "Invalid date format. Use YYYY-MM-DD")


@router.post("/refresh", response_model=List[AppointmentResponse])
async def refresh_appointments(service: SchedulingService = Depends(get_scheduling_service)):
    appointments = await service.refresh()
    return [AppointmentResponse.from_appointment(a) for a in appointments]


@router.get("/appointments", response_model=List[AppointmentResponse])
async def list_appointments(
    search: str = Query("", description="Case-insensitive search over names, notes, type"),
    status: str = Query("all"),
    date_filter: str = Query("all", description="today | thisWeek | thisMonth | past | upcoming | all"),
    type: str = Query("all"),
    sort_by: str = Query("scheduled_at"),
    descending: bool = Query(False),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        options = QueryOptions(
            search_term=search,
            status_filter=status,
            date_filter=date_filter,
            type_filter=type,
            sort_by=sort_by,
            descending=descending,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [AppointmentResponse.from_appointment(a) for a in service.query(options)]


@router.get("/appointments/stats", response_model=StatsResponse)
async def appointment_stats(service: SchedulingService = Depends(get_scheduling_service)):
    return StatsResponse.from_stats(service.stats())


@router.get("/slots", response_model=SlotsResponse)
async def list_slots(
    date: str = Query(..., description="YYYY-MM-DD"),
    doctor_id: str = Query(...),
    service: SchedulingService = Depends(get_scheduling_service),
):
    day = _parse_day(date)
    try:
        slots = service.available_slots(day, doctor_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    first = first_available_slot(slots)
    return SlotsResponse(
        date=day.isoformat(),
        doctor_id=doctor_id,
        slots=[TimeSlotResponse.from_slot(s) for s in slots],
        first_available=first.label if first else None,
    )


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def book_appointment(
    booking: BookingRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    scheduled_at = combine(_parse_day(booking.date), booking.time)
    try:
        appointment = await service.book(
            booking.patient_id,
            booking.doctor_id,
            scheduled_at,
            type=booking.type,
            notes=booking.notes,
            status=booking.status,
        )
    except (DateParseError, MissingIdentifierError):
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AppointmentResponse.from_appointment(appointment)


@router.post("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def change_status(
    appointment_id: str,
    change: StatusChangeRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = await service.transition(appointment_id, change.status.strip().lower())
    return AppointmentResponse.from_appointment(appointment)


@router.post("/appointments/{appointment_id}/reschedule", response_model=RescheduleResponse)
async def reschedule_appointment(
    appointment_id: str,
    request: RescheduleRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    new_time = combine(_parse_day(request.date), request.time)
    cancelled, new = await service.reschedule(appointment_id, new_time)
    return RescheduleResponse(
        cancelled=AppointmentResponse.from_appointment(cancelled),
        appointment=AppointmentResponse.from_appointment(new),
    )


@router.delete("/appointments/{appointment_id}", response_model=MessageResponse)
async def delete_appointment(
    appointment_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    await service.delete(appointment_id)
    return MessageResponse(message="Appointment deleted successfully")
