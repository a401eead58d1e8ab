# amc_portal/equipments.py
import json
import logging
import sqlite3
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from amc_portal.database import get_db, rows_to_dicts
from amc_portal.dependencies import authorize_route, get_current_user
from amc_portal.models import EquipmentIn, EquipmentUpdate, ServiceRecordIn
from amc_portal.task_status import parse_timestamp, to_iso, utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(authorize_route)])

VALID_EQUIPMENT_STATUSES = ["operational", "maintenance-due", "needs-repair", "out-of-service"]

DUPLICATE_SERIAL = "An equipment with this serial number already exists"


def serialize_equipment(row):
    item = dict(row)
    item["service_history"] = json.loads(item["service_history"]) if item.get("service_history") else []
    return item


def _normalize_dates(values: dict):
    for key in ("last_serviced", "next_service"):
        if values.get(key):
            try:
                values[key] = to_iso(values[key])
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid {key}. Please provide a valid ISO timestamp")
    return values


def _check_status(status):
    if status is not None and status not in VALID_EQUIPMENT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {', '.join(VALID_EQUIPMENT_STATUSES)}",
        )


def _fetch_equipment(cursor, equipment_id):
    cursor.execute("SELECT * FROM equipment WHERE id = ?", (equipment_id,))
    return cursor.fetchone()


# List equipment (allowed for all authenticated users)
@router.get("")
def list_equipment(
    status: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
):
    query = "SELECT * FROM equipment WHERE 1=1"
    params = []

    if status:
        query += " AND status = ?"
        params.append(status)
    if location:
        query += " AND location = ?"
        params.append(location)
    query += " ORDER BY name"

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute(query, params)
    rows = cursor.fetchall()
    conn.close()

    equipment = [serialize_equipment(row) for row in rows]
    return {"success": True, "count": len(equipment), "data": equipment}


@router.get("/{equipment_id}")
def get_equipment(equipment_id: int):
    conn = get_db()
    cursor = conn.cursor()
    row = _fetch_equipment(cursor, equipment_id)
    conn.close()

    if not row:
        raise HTTPException(status_code=404, detail="Equipment not found")
    return {"success": True, "data": serialize_equipment(row)}


# Add equipment (admin or personnel)
@router.post("", status_code=201)
def add_equipment(data: EquipmentIn, user=Depends(get_current_user)):
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Equipment name is required")
    _check_status(data.status)
    values = _normalize_dates(data.model_dump())

    conn = get_db()
    cursor = conn.cursor()
    try:
        cursor.execute("""
            INSERT INTO equipment (name, model, serial_number, location, last_serviced, next_service,
                                   service_interval_days, status, notes, service_history)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            values["name"], values["model"], values["serial_number"] or None, values["location"],
            values["last_serviced"], values["next_service"], values["service_interval_days"],
            values["status"], values["notes"], json.dumps(values["service_history"] or []),
        ))
        conn.commit()
        row = _fetch_equipment(cursor, cursor.lastrowid)
    except sqlite3.IntegrityError as e:
        conn.rollback()
        if "serial_number" in str(e):
            raise HTTPException(status_code=400, detail=DUPLICATE_SERIAL)
        raise
    finally:
        conn.close()

    logger.info("Equipment '%s' added by %s", values["name"], user["username"])
    return {"success": True, "message": "Equipment created successfully", "data": serialize_equipment(row)}


# Update equipment; only supplied fields change
@router.put("/{equipment_id}")
def update_equipment(equipment_id: int, data: EquipmentUpdate):
    changes = data.model_dump(exclude_unset=True)
    for column in ("status", "service_interval_days"):
        if column in changes and changes[column] is None:
            changes.pop(column)
    if "serial_number" in changes:
        changes["serial_number"] = changes["serial_number"] or None
    if "name" in changes and not (changes["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Equipment name is required")
    _check_status(changes.get("status"))
    changes = _normalize_dates(changes)
    if "service_history" in changes:
        changes["service_history"] = json.dumps(changes["service_history"] or [])

    conn = get_db()
    cursor = conn.cursor()
    try:
        if not _fetch_equipment(cursor, equipment_id):
            raise HTTPException(status_code=404, detail="Equipment not found")

        if changes:
            changes["updated_at"] = utc_now_iso()
            assignments = ", ".join(f"{column} = ?" for column in changes)
            cursor.execute(
                f"UPDATE equipment SET {assignments} WHERE id = ?",
                list(changes.values()) + [equipment_id],
            )
            conn.commit()
        row = _fetch_equipment(cursor, equipment_id)
    except sqlite3.IntegrityError as e:
        conn.rollback()
        if "serial_number" in str(e):
            raise HTTPException(status_code=400, detail=DUPLICATE_SERIAL)
        raise
    finally:
        conn.close()

    return {"success": True, "message": "Equipment updated successfully", "data": serialize_equipment(row)}


# Delete equipment (admin only)
@router.delete("/{equipment_id}")
def delete_equipment(equipment_id: int):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("DELETE FROM equipment WHERE id = ?", (equipment_id,))
    conn.commit()
    deleted = cursor.rowcount
    conn.close()

    if deleted == 0:
        raise HTTPException(status_code=404, detail="Equipment not found")
    return {"success": True, "message": "Equipment deleted successfully"}


@router.get("/{equipment_id}/history")
def service_history(equipment_id: int):
    conn = get_db()
    cursor = conn.cursor()
    if not _fetch_equipment(cursor, equipment_id):
        conn.close()
        raise HTTPException(status_code=404, detail="Equipment not found")

    cursor.execute("""
        SELECT s.*, u.username AS technician_username
        FROM service_history s
        LEFT JOIN users u ON s.technician_id = u.id
        WHERE s.equipment_id = ?
        ORDER BY s.service_date DESC, s.id DESC
    """, (equipment_id,))
    records = rows_to_dicts(cursor.fetchall())
    conn.close()
    return {"success": True, "count": len(records), "data": records}


@router.post("/{equipment_id}/history", status_code=201)
def add_service_record(equipment_id: int, data: ServiceRecordIn, user=Depends(get_current_user)):
    if not data.service_type.strip():
        raise HTTPException(status_code=400, detail="Service type is required")

    conn = get_db()
    cursor = conn.cursor()
    try:
        equipment = _fetch_equipment(cursor, equipment_id)
        if not equipment:
            raise HTTPException(status_code=404, detail="Equipment not found")

        if data.technician_id is not None:
            cursor.execute("SELECT id FROM users WHERE id = ?", (data.technician_id,))
            if not cursor.fetchone():
                raise HTTPException(status_code=400, detail="Technician not found")

        service_date = parse_timestamp(data.service_date)
        if data.next_service_date is not None:
            next_service = parse_timestamp(data.next_service_date)
        else:
            next_service = service_date + timedelta(days=equipment["service_interval_days"] or 30)

        cursor.execute("""
            INSERT INTO service_history (equipment_id, service_date, service_type, description,
                                         technician_id, next_service_date, cost, invoice_number)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            equipment_id, to_iso(service_date), data.service_type, data.description,
            data.technician_id, to_iso(next_service), data.cost, data.invoice_number,
        ))
        record_id = cursor.lastrowid
        cursor.execute("""
            UPDATE equipment SET last_serviced = ?, next_service = ?, updated_at = ? WHERE id = ?
        """, (to_iso(service_date), to_iso(next_service), utc_now_iso(), equipment_id))
        conn.commit()

        cursor.execute("SELECT * FROM service_history WHERE id = ?", (record_id,))
        record = dict(cursor.fetchone())
    finally:
        conn.close()

    logger.info("Service record %s added to equipment %s by %s", record_id, equipment_id, user["username"])
    return {"success": True, "message": "Service record added", "data": record}
