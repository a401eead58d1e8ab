# amc_portal/models.py
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class LoginIn(BaseModel):
    username: str
    password: str
    role: str


class RegisterIn(BaseModel):
    username: str
    password: str
    email: str
    full_name: str
    role: str


class TaskIn(BaseModel):
    title: str
    category: str
    assigned_to: int
    benchmark_time: datetime
    description: Optional[str] = None
    priority: str = "medium"
    equipment_id: Optional[int] = None


class TaskStatusIn(BaseModel):
    status: str


class EquipmentIn(BaseModel):
    name: str
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    last_serviced: Optional[str] = None
    next_service: Optional[str] = None
    service_interval_days: int = Field(30, gt=0)
    status: str = "operational"
    notes: Optional[str] = None
    service_history: Optional[List[Any]] = None


class EquipmentUpdate(BaseModel):
    name: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    last_serviced: Optional[str] = None
    next_service: Optional[str] = None
    service_interval_days: Optional[int] = Field(None, gt=0)
    status: Optional[str] = None
    notes: Optional[str] = None
    service_history: Optional[List[Any]] = None


class ServiceRecordIn(BaseModel):
    service_date: datetime
    service_type: str
    description: Optional[str] = None
    technician_id: Optional[int] = None
    next_service_date: Optional[datetime] = None
    cost: Optional[float] = Field(None, ge=0)
    invoice_number: Optional[str] = None


class LogIn(BaseModel):
    task_id: int
    action: str
    description: Optional[str] = None
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
