from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class ReviewEditsIn(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    worker_name: Optional[str] = None
    expiry_date: Optional[str] = None
    quincena: Optional[str] = None


class DocumentEditIn(BaseModel):
    name: Optional[str] = None
    expiry_date: Optional[str] = None


class AppointmentIn(BaseModel):
    category: str
    worker_name: str = ""
    date: str = ""
    location: str = ""
    quincena: str = ""


class AppointmentSlotIn(BaseModel):
    date: str
    time: Optional[str] = None
    location: str = ""


class WorkerIn(BaseModel):
    first_name: str
    last_name: str
    dni: str = ""
    quincena: str = ""
    has_prl_20h: bool = False
    prl_appointment: Optional[AppointmentSlotIn] = None
    medical_appointment: Optional[AppointmentSlotIn] = None
    offer_number: str = ""
    birth_date: str = ""
    contract_start: str = ""
    contract_end: str = ""
    phone: str = ""
    shoe_size: int = 42


class RequirementToggleIn(BaseModel):
    label: str
