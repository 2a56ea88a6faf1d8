"""
Pricing Estimator  (Strategy Pattern)
=====================================

Formula
-------
Subtotal = (Base + Per_KM x Distance + Per_Minute x Duration)
           x Load_Multiplier x Time_Multiplier
           + Helper_Rate x Helpers
Price    = max(Subtotal, Minimum_Charge)

* **Load_Multiplier**: per load type, operator-configured in [0.5, 3.0].
* **Time_Multiplier**: peak / weekend / night windows are detected
  independently from the pickup time.  With the default
  ``StackedWindows`` policy every matching surcharge applies, so a
  Saturday night pickup pays ``weekend x night``.
* **Helper charge** is added after the multipliers; surcharges never
  apply to helpers.

Nothing is rounded in here.  Amounts are rounded to whole currency units
(``round_half_up``) only when they are presented or paid out.

The rate table is an immutable snapshot: callers fetch the current one
from the store and pass it in, so ``estimate`` stays pure.

Complexity: O(1) per estimate.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from .enums import LoadType, TimeWindow, VehicleType
from .errors import InvalidInputError

LOAD_MULTIPLIER_RANGE = (0.5, 3.0)
TIME_MULTIPLIER_RANGE = (1.0, 2.0)
DEFAULT_UTC_OFFSET_MINUTES = 180  # Africa/Nairobi, no DST


def round_half_up(amount: float) -> int:
    """Round to whole currency units, halves away from zero."""
    return int(math.floor(amount + 0.5))


# ── Validation helpers ────────────────────────────────────────────────


def _coerce_enum(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidInputError(
            f"Unknown {field_name}: {value!r}", field=field_name
        ) from None


def _number(
    value: Any,
    field_name: str,
    minimum: float = 0.0,
    maximum: Optional[float] = None,
) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(
            f"{field_name} must be a number", field=field_name
        )
    value = float(value)
    if not math.isfinite(value):
        raise InvalidInputError(f"{field_name} must be finite", field=field_name)
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"in [{minimum}, {maximum}]"
        raise InvalidInputError(
            f"{field_name} must be {bounds}, got {value}", field=field_name
        )
    return value


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise InvalidInputError(
            f"{field_name} must be an object, got {value!r}", field=field_name
        )
    return value


def _parse_days(value: Any, field_name: str) -> frozenset[int]:
    try:
        return frozenset(int(d) for d in value)
    except (TypeError, ValueError):
        raise InvalidInputError(
            f"{field_name} must be a list of day numbers, got {value!r}",
            field=field_name,
        ) from None


def _parse_time(value: Any, field_name: str) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value))
    except ValueError:
        raise InvalidInputError(
            f"{field_name} must be HH:MM, got {value!r}", field=field_name
        ) from None


# ── Time windows ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class HourRange:
    """Half-open local-time range ``[start, end)``; may wrap past midnight."""

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        if self.start <= self.end:
            return self.start <= moment < self.end
        return moment >= self.start or moment < self.end

    def to_list(self) -> list[str]:
        return [self.start.strftime("%H:%M"), self.end.strftime("%H:%M")]

    @classmethod
    def from_value(cls, value: Any, field_name: str) -> "HourRange":
        if isinstance(value, HourRange):
            return value
        try:
            start, end = value
        except (TypeError, ValueError):
            raise InvalidInputError(
                f"{field_name} must be a [start, end] pair", field=field_name
            ) from None
        return cls(_parse_time(start, field_name), _parse_time(end, field_name))


@dataclass(frozen=True)
class TimeWindowSchedule:
    """Operator-defined hours for each pricing window."""

    peak_hours: tuple[HourRange, ...] = (
        HourRange(time(7, 0), time(9, 0)),
        HourRange(time(17, 0), time(19, 0)),
    )
    night: HourRange = HourRange(time(22, 0), time(6, 0))
    weekend_days: frozenset[int] = frozenset({5, 6})  # Saturday, Sunday
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES

    def __post_init__(self):
        offset = self.utc_offset_minutes
        if (
            isinstance(offset, bool)
            or not isinstance(offset, int)
            or abs(offset) >= 24 * 60
        ):
            raise InvalidInputError(
                f"utc_offset_minutes must be whole minutes within a day, got {offset!r}",
                field="schedule.utc_offset_minutes",
            )
        bad_days = [d for d in self.weekend_days if d not in range(7)]
        if bad_days:
            raise InvalidInputError(
                f"weekend_days must be 0-6 (Monday=0), got {bad_days}",
                field="schedule.weekend_days",
            )

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(minutes=self.utc_offset_minutes))

    def local(self, moment: datetime) -> datetime:
        """Naive timestamps are already local; aware ones are converted."""
        if moment.tzinfo is None:
            return moment
        return moment.astimezone(self.tz)

    def aware(self, moment: datetime) -> datetime:
        """Attach the local offset to a naive timestamp so it can be stored."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment

    def windows_for(self, moment: datetime) -> tuple[TimeWindow, ...]:
        local = self.local(moment)
        clock = local.time()
        windows = []
        if any(r.contains(clock) for r in self.peak_hours):
            windows.append(TimeWindow.PEAK_HOURS)
        if local.weekday() in self.weekend_days:
            windows.append(TimeWindow.WEEKEND)
        if self.night.contains(clock):
            windows.append(TimeWindow.NIGHT)
        return tuple(windows)

    def to_dict(self) -> dict[str, Any]:
        return {
            "peak_hours": [r.to_list() for r in self.peak_hours],
            "night": self.night.to_list(),
            "weekend_days": sorted(self.weekend_days),
            "utc_offset_minutes": self.utc_offset_minutes,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimeWindowSchedule":
        defaults = cls()
        data = _mapping(data, "schedule")
        peak = data.get("peak_hours")
        night = data.get("night")
        weekend = data.get("weekend_days")
        if peak is not None and not isinstance(peak, (list, tuple)):
            raise InvalidInputError(
                "schedule.peak_hours must be a list of [start, end] pairs",
                field="schedule.peak_hours",
            )
        return cls(
            peak_hours=(
                tuple(
                    HourRange.from_value(r, "schedule.peak_hours") for r in peak
                )
                if peak is not None
                else defaults.peak_hours
            ),
            night=(
                HourRange.from_value(night, "schedule.night")
                if night is not None
                else defaults.night
            ),
            weekend_days=(
                _parse_days(weekend, "schedule.weekend_days")
                if weekend is not None
                else defaults.weekend_days
            ),
            utc_offset_minutes=data.get("utc_offset_minutes", defaults.utc_offset_minutes),
        )


# ── Rate table ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VehicleRate:
    base: float = 0.0
    per_km: float = 0.0
    per_minute: float = 0.0

    def __post_init__(self):
        for name in ("base", "per_km", "per_minute"):
            object.__setattr__(
                self, name, _number(getattr(self, name), f"base_rates.{name}")
            )

    def to_dict(self) -> dict[str, float]:
        return {"base": self.base, "per_km": self.per_km, "per_minute": self.per_minute}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VehicleRate":
        return cls(
            base=data.get("base", 0.0),
            per_km=data.get("per_km", 0.0),
            per_minute=data.get("per_minute", 0.0),
        )


@dataclass(frozen=True)
class RateTable:
    """
    Immutable pricing snapshot.

    Every ``VehicleType``, ``LoadType`` and ``TimeWindow`` has an entry
    after construction: missing ones are filled with neutral values
    (zero rates, multiplier 1.0).  Updates never mutate a table; they
    produce a new snapshot with ``version + 1`` via ``merged``.
    """

    base_rates: Mapping[VehicleType, VehicleRate] = field(default_factory=dict)
    load_multipliers: Mapping[LoadType, float] = field(default_factory=dict)
    time_multipliers: Mapping[TimeWindow, float] = field(default_factory=dict)
    helper_rate: float = 0.0
    minimum_charge: float = 0.0
    schedule: TimeWindowSchedule = field(default_factory=TimeWindowSchedule)
    version: int = 1

    def __post_init__(self):
        rates: dict[VehicleType, VehicleRate] = {}
        for key, rate in _mapping(self.base_rates, "base_rates").items():
            vehicle = _coerce_enum(VehicleType, key, "base_rates")
            if not isinstance(rate, VehicleRate):
                rate = VehicleRate.from_dict(
                    _mapping(rate, f"base_rates.{vehicle.value}")
                )
            rates[vehicle] = rate
        for vehicle in VehicleType:
            rates.setdefault(vehicle, VehicleRate())

        loads: dict[LoadType, float] = {}
        for key, value in _mapping(self.load_multipliers, "load_multipliers").items():
            load = _coerce_enum(LoadType, key, "load_multipliers")
            loads[load] = _number(
                value, f"load_multipliers.{load.value}", *LOAD_MULTIPLIER_RANGE
            )
        for load in LoadType:
            loads.setdefault(load, 1.0)

        windows: dict[TimeWindow, float] = {}
        for key, value in _mapping(self.time_multipliers, "time_multipliers").items():
            window = _coerce_enum(TimeWindow, key, "time_multipliers")
            windows[window] = _number(
                value, f"time_multipliers.{window.value}", *TIME_MULTIPLIER_RANGE
            )
        for window in TimeWindow:
            windows.setdefault(window, 1.0)

        object.__setattr__(self, "base_rates", MappingProxyType(rates))
        object.__setattr__(self, "load_multipliers", MappingProxyType(loads))
        object.__setattr__(self, "time_multipliers", MappingProxyType(windows))
        object.__setattr__(
            self, "helper_rate", _number(self.helper_rate, "helper_rate")
        )
        object.__setattr__(
            self, "minimum_charge", _number(self.minimum_charge, "minimum_charge")
        )
        if not isinstance(self.schedule, TimeWindowSchedule):
            object.__setattr__(
                self, "schedule", TimeWindowSchedule.from_dict(self.schedule)
            )
        if isinstance(self.version, bool) or not isinstance(self.version, int):
            raise InvalidInputError("version must be an integer", field="version")

    def rate_for(self, vehicle_type: VehicleType) -> VehicleRate:
        return self.base_rates.get(vehicle_type, VehicleRate())

    def load_multiplier(self, load_type: LoadType) -> float:
        return self.load_multipliers.get(load_type, 1.0)

    def time_multiplier(self, window: TimeWindow) -> float:
        return self.time_multipliers.get(window, 1.0)

    # ── Serialisation ─────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_rates": {v.value: r.to_dict() for v, r in self.base_rates.items()},
            "load_multipliers": {k.value: m for k, m in self.load_multipliers.items()},
            "time_multipliers": {k.value: m for k, m in self.time_multipliers.items()},
            "helper_rate": self.helper_rate,
            "minimum_charge": self.minimum_charge,
            "schedule": self.schedule.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateTable":
        data = _mapping(data, "rate_table")
        return cls(
            base_rates=data.get("base_rates") or {},
            load_multipliers=data.get("load_multipliers") or {},
            time_multipliers=data.get("time_multipliers") or {},
            helper_rate=data.get("helper_rate", 0.0),
            minimum_charge=data.get("minimum_charge", 0.0),
            schedule=TimeWindowSchedule.from_dict(data.get("schedule") or {}),
            version=data.get("version", 1),
        )

    def merged(self, changes: Mapping[str, Any]) -> "RateTable":
        """Apply a partial update and return the next snapshot."""
        data = self.to_dict()
        for key, value in _mapping(changes, "rate_table").items():
            if key == "base_rates":
                for vehicle, rate in _mapping(value, key).items():
                    name = getattr(vehicle, "value", vehicle)
                    if isinstance(rate, VehicleRate):
                        rate = rate.to_dict()
                    data["base_rates"][name] = {
                        **data["base_rates"].get(name, {}),
                        **_mapping(rate, f"base_rates.{name}"),
                    }
            elif key in ("load_multipliers", "time_multipliers"):
                for name, multiplier in _mapping(value, key).items():
                    data[key][getattr(name, "value", name)] = multiplier
            elif key == "schedule":
                data["schedule"] = {**data["schedule"], **_mapping(value, key)}
            elif key in ("helper_rate", "minimum_charge"):
                data[key] = value
            else:
                raise InvalidInputError(
                    f"Unknown rate table field: {key}", field=key
                )
        data["version"] = self.version + 1
        return RateTable.from_dict(data)


def default_rate_table(
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES, version: int = 1
) -> RateTable:
    """Factory defaults used on first start and by "reset to defaults"."""
    return RateTable(
        base_rates={
            VehicleType.PICKUP: VehicleRate(base=500, per_km=50, per_minute=0),
            VehicleType.VAN: VehicleRate(base=600, per_km=55, per_minute=0),
            VehicleType.SMALL_TRUCK: VehicleRate(base=1000, per_km=70, per_minute=5),
            VehicleType.MEDIUM_TRUCK: VehicleRate(base=1500, per_km=90, per_minute=8),
            VehicleType.LARGE_TRUCK: VehicleRate(base=2500, per_km=120, per_minute=10),
        },
        load_multipliers={
            LoadType.FURNITURE: 1.0,
            LoadType.APPLIANCES: 1.2,
            LoadType.ELECTRONICS: 1.3,
            LoadType.FRAGILE: 1.5,
            LoadType.BOXES: 1.0,
            LoadType.OTHER: 1.0,
        },
        time_multipliers={
            TimeWindow.PEAK_HOURS: 1.2,
            TimeWindow.WEEKEND: 1.1,
            TimeWindow.NIGHT: 1.3,
        },
        helper_rate=300,
        minimum_charge=800,
        schedule=TimeWindowSchedule(utc_offset_minutes=utc_offset_minutes),
        version=version,
    )


# ── Trip input & breakdown ────────────────────────────────────────────


@dataclass(frozen=True)
class TripInput:
    vehicle_type: VehicleType
    load_type: LoadType
    distance_km: float
    duration_minutes: float
    pickup_at: datetime
    helpers_count: int = 0

    def __post_init__(self):
        object.__setattr__(
            self,
            "vehicle_type",
            _coerce_enum(VehicleType, self.vehicle_type, "vehicle_type"),
        )
        object.__setattr__(
            self, "load_type", _coerce_enum(LoadType, self.load_type, "load_type")
        )
        object.__setattr__(
            self, "distance_km", _number(self.distance_km, "distance_km")
        )
        object.__setattr__(
            self, "duration_minutes", _number(self.duration_minutes, "duration_minutes")
        )
        if not isinstance(self.pickup_at, datetime):
            raise InvalidInputError(
                "pickup_at must be a datetime", field="pickup_at"
            )
        if isinstance(self.helpers_count, bool) or not isinstance(
            self.helpers_count, int
        ):
            raise InvalidInputError(
                "helpers_count must be a whole number", field="helpers_count"
            )
        if self.helpers_count < 0:
            raise InvalidInputError(
                f"helpers_count must be >= 0, got {self.helpers_count}",
                field="helpers_count",
            )


@dataclass(frozen=True)
class PriceBreakdown:
    base_component: float
    distance_component: float
    load_multiplier_applied: float
    time_multiplier_applied: float
    helper_charge: float
    subtotal_before_floor: float
    total_price: float
    applied_windows: tuple[TimeWindow, ...] = ()

    @property
    def minimum_applied(self) -> bool:
        return self.total_price > self.subtotal_before_floor

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_component": self.base_component,
            "distance_component": self.distance_component,
            "load_multiplier_applied": self.load_multiplier_applied,
            "time_multiplier_applied": self.time_multiplier_applied,
            "helper_charge": self.helper_charge,
            "subtotal_before_floor": self.subtotal_before_floor,
            "total_price": self.total_price,
            "applied_windows": [w.value for w in self.applied_windows],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceBreakdown":
        return cls(
            base_component=float(data["base_component"]),
            distance_component=float(data["distance_component"]),
            load_multiplier_applied=float(data["load_multiplier_applied"]),
            time_multiplier_applied=float(data["time_multiplier_applied"]),
            helper_charge=float(data["helper_charge"]),
            subtotal_before_floor=float(data["subtotal_before_floor"]),
            total_price=float(data["total_price"]),
            applied_windows=tuple(
                TimeWindow(w) for w in data.get("applied_windows", ())
            ),
        )


# ── Strategy hierarchy ────────────────────────────────────────────────


class TimeMultiplierPolicy(ABC):
    """Combines the multipliers of every window a pickup falls into."""

    @abstractmethod
    def combine(self, multipliers: Iterable[float]) -> float: ...


class StackedWindows(TimeMultiplierPolicy):
    """Surcharges compose multiplicatively; no window means 1.0."""

    def combine(self, multipliers: Iterable[float]) -> float:
        return math.prod(multipliers)


class HighestWindow(TimeMultiplierPolicy):
    """Only the largest applicable surcharge is charged."""

    def combine(self, multipliers: Iterable[float]) -> float:
        return max(multipliers, default=1.0)


DEFAULT_TIME_POLICY: TimeMultiplierPolicy = StackedWindows()


# ── Estimator ─────────────────────────────────────────────────────────


def estimate(
    trip: TripInput,
    rate_table: RateTable,
    policy: Optional[TimeMultiplierPolicy] = None,
) -> PriceBreakdown:
    """Price *trip* against *rate_table*.  Pure and deterministic."""
    if not isinstance(trip, TripInput):
        raise InvalidInputError("trip must be a TripInput", field="trip")
    if not isinstance(rate_table, RateTable):
        raise InvalidInputError("rate_table must be a RateTable", field="rate_table")
    policy = policy or DEFAULT_TIME_POLICY

    rate = rate_table.rate_for(trip.vehicle_type)
    base_component = rate.base
    distance_component = (
        rate.per_km * trip.distance_km + rate.per_minute * trip.duration_minutes
    )
    load_multiplier = rate_table.load_multiplier(trip.load_type)

    windows = rate_table.schedule.windows_for(trip.pickup_at)
    time_multiplier = policy.combine(rate_table.time_multiplier(w) for w in windows)

    helper_charge = rate_table.helper_rate * trip.helpers_count
    subtotal = (
        (base_component + distance_component) * load_multiplier * time_multiplier
        + helper_charge
    )
    return PriceBreakdown(
        base_component=base_component,
        distance_component=distance_component,
        load_multiplier_applied=load_multiplier,
        time_multiplier_applied=time_multiplier,
        helper_charge=helper_charge,
        subtotal_before_floor=subtotal,
        total_price=max(subtotal, rate_table.minimum_charge),
        applied_windows=windows,
    )


def estimate_all(
    rate_table: RateTable,
    *,
    load_type: LoadType,
    distance_km: float,
    duration_minutes: float,
    pickup_at: datetime,
    helpers_count: int = 0,
    policy: Optional[TimeMultiplierPolicy] = None,
) -> dict[VehicleType, PriceBreakdown]:
    """Quote the same trip for every vehicle type."""
    return {
        vehicle: estimate(
            TripInput(
                vehicle_type=vehicle,
                load_type=load_type,
                distance_km=distance_km,
                duration_minutes=duration_minutes,
                pickup_at=pickup_at,
                helpers_count=helpers_count,
            ),
            rate_table,
            policy,
        )
        for vehicle in VehicleType
    }
