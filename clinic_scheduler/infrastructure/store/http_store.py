"""Async client for the clinic REST backend.

Endpoints (relative to ``STORE_BASE_URL``)::

    GET    /appointments                 all appointments
    GET    /appointments/doctor/{id}     one doctor's appointments
    GET    /appointments/patient/{id}    one patient's appointments
    POST   /appointments                 create
    PUT    /appointments/{id}            partial update
    DELETE /appointments/{id}            delete
    GET    /users                        every user; patients and doctors are split by role
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ...application.ports.appointment_store import (
    AppointmentFilter,
    AppointmentStore,
    RawAppointment,
    RawPerson,
)
from ...exceptions import StoreConflictError, StoreError
from .memory_store import DOCTOR_ROLES, PATIENT_ROLES

logger = logging.getLogger(__name__)


def unwrap_list(payload: Any, key: str) -> List[Dict[str, Any]]:
    """Accept a bare list, ``{key: [...]}``, ``{"data": [...]}`` or a single object."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for wrapper in (key, "data"):
            inner = payload.get(wrapper)
            if isinstance(inner, list):
                return [item for item in inner if isinstance(item, dict)]
        return [payload] if payload else []
    return []


def unwrap_object(payload: Any, key: str) -> Optional[Dict[str, Any]]:
    if isinstance(payload, dict):
        for wrapper in (key, "data"):
            inner = payload.get(wrapper)
            if isinstance(inner, dict):
                return inner
        return payload
    return None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP error! status: {response.status_code}"


class HttpAppointmentStore(AppointmentStore):
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 15.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                resp = await client.request(method, path, json=json, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = _error_message(e.response)
            logger.error(f"Store {method} {path} failed with {status}: {message}")
            error_cls = StoreConflictError if status == 409 else StoreError
            raise error_cls(message, status_code=status) from e
        except httpx.RequestError as e:
            logger.error(f"Store {method} {path} unreachable: {e}")
            raise StoreError(f"Appointment store unreachable: {e}") from e

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"Store returned invalid JSON for {method} {path}", status_code=resp.status_code) from e

    async def list_appointments(self, filter: Optional[AppointmentFilter] = None) -> List[RawAppointment]:
        path = "/appointments"
        if filter is not None and filter.doctor_id is not None:
            path = f"/appointments/doctor/{filter.doctor_id}"
        elif filter is not None and filter.patient_id is not None:
            path = f"/appointments/patient/{filter.patient_id}"
        records = unwrap_list(await self._request("GET", path), "appointments")
        logger.info(f"Fetched {len(records)} appointments from {path}")
        return records

    async def _users(self) -> List[RawPerson]:
        return unwrap_list(await self._request("GET", "/users"), "users")

    async def list_patients(self) -> List[RawPerson]:
        return [u for u in await self._users() if str(u.get("role", "")).lower() in PATIENT_ROLES]

    async def list_doctors(self) -> List[RawPerson]:
        return [u for u in await self._users() if str(u.get("role", "")).lower() in DOCTOR_ROLES]

    async def create_appointment(self, payload: Dict[str, Any]) -> RawAppointment:
        data = await self._request("POST", "/appointments", json=payload)
        record = unwrap_object(data, "appointment")
        if record is None:
            raise StoreError("No data returned from server")
        return record

    async def update_appointment(self, appointment_id: str, fields: Dict[str, Any]) -> RawAppointment:
        data = await self._request("PUT", f"/appointments/{appointment_id}", json=fields)
        return unwrap_object(data, "appointment") or {}

    async def delete_appointment(self, appointment_id: str) -> None:
        await self._request("DELETE", f"/appointments/{appointment_id}")
