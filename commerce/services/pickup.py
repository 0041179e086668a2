"""
Local pickup scheduling.

Customers who choose local pickup book a window at a pickup location.
Windows come from schedules: recurring ones repeat weekly on a weekday, one-time
ones apply to a single date (a market day, a holiday opening). A schedule with
max_orders caps how many non-cancelled reservations a window can take.

The admin calendar shows a month as a 6-week grid starting on Sunday, with each
day's windows and the reservations booked into them.
"""

import calendar
import logging
from datetime import date, time, timedelta
from typing import Any, Optional

from storefront.config import get_settings
from storefront.data_store import DataStore, get_data_store, new_id
from storefront.errors import NotFoundError, SlotUnavailableError, ValidationError, build_model
from storefront.models import (
    CalendarSlot,
    PickupLocation,
    PickupReservation,
    PickupSchedule,
    PickupSlot,
    ReservationStatus,
    ScheduleType,
    sunday_based_weekday,
    utcnow,
)

logger = logging.getLogger("pickup_service")

GRID_DAYS = 42


# =============================================================================
# Calendar helpers
# =============================================================================

def _grid_start(year: int, month: int) -> date:
    first = date(year, month, 1)
    return first - timedelta(days=sunday_based_weekday(first))


def build_calendar_grid(year: int, month: int) -> list[list[date]]:
    """
    Six weeks of dates covering a month.

    The grid starts on the Sunday on or before the 1st, so it always
    includes trailing days of the previous month and leading days of the
    next one.
    """
    start = _grid_start(year, month)
    days = [start + timedelta(days=i) for i in range(GRID_DAYS)]
    return [days[i:i + 7] for i in range(0, GRID_DAYS, 7)]


def _calendar_range(year: int, month: int) -> tuple[date, date]:
    """Sunday before the 1st through the Saturday after the last day."""
    start = _grid_start(year, month)
    last = date(year, month, calendar.monthrange(year, month)[1])
    end = last + timedelta(days=6 - sunday_based_weekday(last))
    return start, end


def _reservation_matches(reservation: PickupReservation, schedule: PickupSchedule, on_date: date) -> bool:
    if reservation.status == ReservationStatus.CANCELLED:
        return False
    if reservation.location_id != schedule.location_id or reservation.pickup_date != on_date:
        return False
    if reservation.schedule_id:
        return reservation.schedule_id == schedule.id
    return (
        reservation.pickup_time_start == schedule.start_time
        and reservation.pickup_time_end == schedule.end_time
    )


def build_calendar_slots(
    year: int,
    month: int,
    locations: list[PickupLocation],
    schedules: list[PickupSchedule],
    reservations: list[PickupReservation],
) -> dict[date, list[CalendarSlot]]:
    """
    Bucket schedules and reservations into calendar days.

    Every date from the Sunday before the 1st to the Saturday after the
    month's last day is present, even with no slots. Schedules of unknown
    locations and inactive schedules are left out.
    """
    locations_by_id = {loc.id: loc for loc in locations}
    start, end = _calendar_range(year, month)

    days: dict[date, list[CalendarSlot]] = {}
    current = start
    while current <= end:
        slots = []
        for schedule in schedules:
            location = locations_by_id.get(schedule.location_id)
            if not location or not schedule.is_active or not schedule.applies_on(current):
                continue
            booked = [r for r in reservations if _reservation_matches(r, schedule, current)]
            slots.append(CalendarSlot(
                schedule_id=schedule.id,
                location_id=location.id,
                location_name=location.name,
                start_time=schedule.start_time,
                end_time=schedule.end_time,
                max_orders=schedule.max_orders,
                booked_count=len(booked),
                is_recurring=schedule.is_recurring,
                reservations=booked,
            ))
        slots.sort(key=lambda s: (s.start_time, s.location_name))
        days[current] = slots
        current += timedelta(days=1)
    return days


def _as_time(value: Any) -> Optional[time]:
    if value is None or isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


def _as_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# Service
# =============================================================================

class PickupService:
    def __init__(self, data_store: Optional[DataStore] = None):
        self.data_store = data_store or get_data_store()

    # -------------------------------------------------------------------------
    # Locations and schedules
    # -------------------------------------------------------------------------

    def list_locations(self, active_only: bool = True) -> list[PickupLocation]:
        locations = self.data_store.get_pickup_locations()
        if active_only:
            locations = [loc for loc in locations if loc.is_active]
        return locations

    def get_location(self, location_id: str) -> PickupLocation:
        location = self.data_store.get_pickup_location(location_id)
        if not location:
            raise NotFoundError("Pickup location", location_id)
        return location

    def list_schedules(self, location_id: Optional[str] = None) -> list[PickupSchedule]:
        schedules = self.data_store.get_pickup_schedules(location_id)
        return sorted(
            schedules,
            key=lambda s: (s.schedule_type, s.day_of_week or 0, s.specific_date or date.min, s.start_time),
        )

    def validate_schedule(self, data: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}

        location_id = data.get("location_id")
        if not location_id or not self.data_store.get_pickup_location(location_id):
            errors["location_id"] = "Select a pickup location"

        schedule_type = data.get("schedule_type")
        if schedule_type == ScheduleType.RECURRING:
            day = _as_int(data.get("day_of_week"))
            if day is None or not 0 <= day <= 6:
                errors["day_of_week"] = "Select a day of the week"
            if data.get("specific_date"):
                errors["specific_date"] = "Recurring schedules cannot have a specific date"
        elif schedule_type == ScheduleType.ONE_TIME:
            if not data.get("specific_date"):
                errors["specific_date"] = "Select a date"
            if data.get("day_of_week") is not None:
                errors["day_of_week"] = "One-time schedules cannot have a day of the week"
        else:
            errors["schedule_type"] = "Schedule type must be recurring or one_time"

        try:
            start = _as_time(data.get("start_time"))
            end = _as_time(data.get("end_time"))
        except ValueError:
            start = end = None
        if start is None or end is None:
            errors["start_time"] = "Start and end times are required"
        elif start >= end:
            errors["end_time"] = "End time must be after start time"

        max_orders = data.get("max_orders")
        limit = _as_int(max_orders)
        if max_orders is not None and (limit is None or limit < 1):
            errors["max_orders"] = "Max orders must be at least 1, or empty for unlimited"
        return errors

    def save_schedule(self, data: dict[str, Any], schedule_id: Optional[str] = None) -> PickupSchedule:
        if schedule_id is not None:
            existing = self.data_store.get_pickup_schedule(schedule_id)
            if not existing:
                raise NotFoundError("Pickup schedule", schedule_id)
            merged = existing.model_dump()
            merged.update(data)
        else:
            merged = dict(data)

        errors = self.validate_schedule(merged)
        if errors:
            logger.warning(f"Pickup schedule rejected: {errors}")
            raise ValidationError(errors)

        merged["id"] = schedule_id or new_id("sched")
        schedule = build_model(PickupSchedule, merged)
        self.data_store.save("pickup_schedules", schedule)
        logger.info(f"Saved pickup schedule {schedule.id} at {schedule.location_id}")
        return schedule

    def deactivate_schedule(self, schedule_id: str) -> PickupSchedule:
        schedule = self.data_store.get_pickup_schedule(schedule_id)
        if not schedule:
            raise NotFoundError("Pickup schedule", schedule_id)
        schedule.is_active = False
        self.data_store.save("pickup_schedules", schedule)
        logger.info(f"Deactivated pickup schedule {schedule_id}")
        return schedule

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def get_pickup_slot_count(self, location_id: str, on_date: date, start_time: time, end_time: time) -> int:
        """Non-cancelled reservations for exactly this window."""
        return sum(
            1
            for r in self.data_store.get_pickup_reservations(location_id, on_date, on_date)
            if r.status != ReservationStatus.CANCELLED
            and r.pickup_time_start == start_time
            and r.pickup_time_end == end_time
        )

    def _slot_for(self, schedule: PickupSchedule, on_date: date) -> PickupSlot:
        count = self.get_pickup_slot_count(schedule.location_id, on_date, schedule.start_time, schedule.end_time)
        available = None if schedule.max_orders is None else schedule.max_orders - count
        return PickupSlot(
            schedule_id=schedule.id,
            slot_date=on_date,
            start_time=schedule.start_time,
            end_time=schedule.end_time,
            max_orders=schedule.max_orders,
            current_count=count,
            slots_available=available,
        )

    def get_available_pickup_slots(
        self,
        location_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[PickupSlot]:
        """
        Bookable windows at a location, date by date.

        For each date the weekday's recurring windows come first, then the
        one-time windows for that date. Full windows are left out.
        Ranges longer than PICKUP_MAX_RANGE_DAYS are rejected.
        """
        settings = get_settings()
        start_date = start_date or utcnow().date()
        end_date = end_date or start_date + timedelta(days=settings.PICKUP_LOOKAHEAD_DAYS)
        if (end_date - start_date).days >= settings.PICKUP_MAX_RANGE_DAYS:
            raise ValidationError({
                "end_date": f"Date range cannot exceed {settings.PICKUP_MAX_RANGE_DAYS} days"
            })

        location = self.data_store.get_pickup_location(location_id)
        if not location or not location.is_active:
            return []

        schedules = [s for s in self.data_store.get_pickup_schedules(location_id) if s.is_active]
        recurring = sorted((s for s in schedules if s.is_recurring), key=lambda s: s.start_time)
        one_time = sorted((s for s in schedules if not s.is_recurring), key=lambda s: s.start_time)

        slots: list[PickupSlot] = []
        current = start_date
        while current <= end_date:
            for schedule in recurring + one_time:
                if not schedule.applies_on(current):
                    continue
                slot = self._slot_for(schedule, current)
                if slot.slots_available is None or slot.slots_available > 0:
                    slots.append(slot)
            current += timedelta(days=1)
        return slots

    # -------------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------------

    def reserve_pickup(
        self,
        order_id: str,
        location_id: str,
        schedule_id: str,
        pickup_date: date,
    ) -> PickupReservation:
        existing = self.data_store.get_reservation_for_order(order_id)
        if existing and existing.status != ReservationStatus.CANCELLED:
            raise ValidationError({"order_id": "This order already has a pickup reservation"})

        location = self.data_store.get_pickup_location(location_id)
        if not location or not location.is_active:
            raise SlotUnavailableError(f"Pickup location is not available: {location_id}")

        schedule = self.data_store.get_pickup_schedule(schedule_id)
        if (
            not schedule
            or not schedule.is_active
            or schedule.location_id != location_id
            or not schedule.applies_on(pickup_date)
        ):
            raise SlotUnavailableError(f"No pickup window {schedule_id} on {pickup_date.isoformat()}")

        slot = self._slot_for(schedule, pickup_date)
        if slot.slots_available is not None and slot.slots_available <= 0:
            raise SlotUnavailableError(
                f"The {schedule.start_time:%H:%M} window on {pickup_date.isoformat()} is full"
            )

        reservation = PickupReservation(
            id=existing.id if existing else new_id("resv"),
            order_id=order_id,
            location_id=location_id,
            schedule_id=schedule_id,
            pickup_date=pickup_date,
            pickup_time_start=schedule.start_time,
            pickup_time_end=schedule.end_time,
        )
        self.data_store.save("pickup_reservations", reservation)
        logger.info(f"Reserved pickup for order {order_id} at {location.name} on {pickup_date}")
        return reservation

    def get_reservation(self, reservation_id: str) -> PickupReservation:
        reservation = self.data_store.get("pickup_reservations", reservation_id)
        if not reservation:
            raise NotFoundError("Pickup reservation", reservation_id)
        return reservation

    def update_reservation_status(self, reservation_id: str, status: ReservationStatus) -> PickupReservation:
        reservation = self.get_reservation(reservation_id)
        reservation.status = ReservationStatus(status).value
        self.data_store.save("pickup_reservations", reservation)
        logger.info(f"Pickup reservation {reservation_id} -> {reservation.status}")
        return reservation

    def cancel_reservation(self, reservation_id: str) -> PickupReservation:
        return self.update_reservation_status(reservation_id, ReservationStatus.CANCELLED)

    def cancel_for_order(self, order_id: str) -> Optional[PickupReservation]:
        reservation = self.data_store.get_reservation_for_order(order_id)
        if reservation and reservation.status != ReservationStatus.CANCELLED:
            return self.cancel_reservation(reservation.id)
        return None

    # -------------------------------------------------------------------------
    # Admin calendar
    # -------------------------------------------------------------------------

    def get_calendar(self, year: int, month: int) -> dict[date, list[CalendarSlot]]:
        start, end = _calendar_range(year, month)
        return build_calendar_slots(
            year,
            month,
            self.data_store.get_pickup_locations(),
            self.data_store.get_pickup_schedules(),
            self.data_store.get_pickup_reservations(start_date=start, end_date=end),
        )
