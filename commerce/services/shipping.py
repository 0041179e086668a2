"""
Shipping eligibility, carrier services and sales tax.

Live plants cannot go everywhere at every time of year. Each state has a
zone (allowed, blocked, or conditional with blocked months), and admin-defined
rules layer seasonal blocks, required services, transit limits and surcharges
on top. The services offered at checkout are the enabled carrier services
that satisfy the resulting eligibility, narrowed to the store's forced
service for the destination when that service is available.

Design decisions:
- Eligibility is computed for a date so seasonal rules are testable
- Rules are applied highest priority first; the first block wins
- Admin saves are validated up front and raise ValidationError with field errors
"""

import logging
import re
from datetime import date
from typing import Any, Optional

from storefront.config import Settings, get_settings
from storefront.data_store import DataStore, get_data_store, new_id
from storefront.errors import NotFoundError, ValidationError, build_model
from storefront.models import (
    CarrierService,
    RuleType,
    ShippingEligibility,
    ShippingOption,
    ShippingZone,
    ShippingZoneRule,
    TaxResult,
    ZoneStatus,
    round_money,
    utcnow,
)

logger = logging.getLogger("shipping_service")

STATE_CODE_PATTERN = re.compile(r"^[A-Z]{2}$")


# =============================================================================
# Tax
# =============================================================================

def calculate_tax(
    subtotal: float,
    shipping_state: Optional[str],
    tax_exempt: bool = False,
    tax_exempt_reason: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> TaxResult:
    """
    Sales tax for an order.

    Tax is only collected for destinations in a nexus state. Tax-exempt
    customers and a globally disabled tax setting yield a zero result with
    a note explaining why.
    """
    settings = settings or get_settings()

    if not settings.TAX_ENABLED:
        return TaxResult(rate=0.0, amount=0.0, label="Tax", note="Tax disabled", is_taxable=False)

    if tax_exempt:
        reason = tax_exempt_reason or "Tax-exempt"
        return TaxResult(
            rate=0.0, amount=0.0, label="Tax-exempt", note=f"Tax-exempt: {reason}", is_taxable=False
        )

    state = (shipping_state or "").strip().upper()
    if state not in settings.get_tax_nexus_states():
        return TaxResult(
            rate=0.0,
            amount=0.0,
            label="No tax (out of state)" if state else "Tax",
            note=f"Out of state ({state})" if state else "No state provided",
            is_taxable=False,
        )

    rate = settings.TAX_RATE
    percent = f"{rate * 100:.0f}%"
    return TaxResult(
        rate=rate,
        amount=round_money(subtotal * rate),
        label=f"{settings.TAX_LABEL} ({percent})",
        note=f"{state} {percent}",
        is_taxable=True,
    )


# =============================================================================
# Service
# =============================================================================

class ShippingService:
    """
    Shipping zones, rules and carrier services.

    Example:
        shipping = ShippingService()
        eligibility = shipping.check_shipping_eligibility("AZ", date(2026, 7, 1))
        if eligibility.allowed:
            options = shipping.get_shipping_options("AZ", date(2026, 7, 1))
    """

    def __init__(self, data_store: Optional[DataStore] = None, settings: Optional[Settings] = None):
        self.data_store = data_store or get_data_store()
        self.settings = settings or get_settings()

    # =========================================================================
    # Eligibility
    # =========================================================================

    def check_shipping_eligibility(self, state_code: str, on_date: Optional[date] = None) -> ShippingEligibility:
        on_date = on_date or utcnow().date()
        state_code = state_code.strip().upper()
        zone = self.data_store.get_zone_by_state(state_code)

        if zone is None:
            return ShippingEligibility(
                state_code=state_code,
                allowed=False,
                message=f"We do not currently ship to {state_code}",
            )

        result = ShippingEligibility(state_code=state_code, allowed=True, message=zone.customer_message)

        if zone.status == ZoneStatus.BLOCKED:
            result.allowed = False
            result.message = zone.customer_message or f"We do not ship to {zone.state_name}"
            return result

        if zone.status == ZoneStatus.CONDITIONAL and zone.conditions:
            if on_date.month in zone.conditions.blocked_months:
                result.allowed = False
                result.message = (
                    zone.customer_message
                    or f"Shipping to {zone.state_name} is paused this time of year"
                )
                return result
            result.required_service = zone.conditions.required_service
            result.max_transit_days = zone.conditions.max_transit_days

        rules = [r for r in self.data_store.get_zone_rules() if r.applies_to(state_code, on_date)]
        rules.sort(key=lambda r: r.priority, reverse=True)

        service_set_by_rule = False
        for rule in rules:
            actions = rule.actions
            if rule.rule_type == RuleType.SEASONAL_BLOCK:
                if actions.block:
                    result.allowed = False
                    result.message = actions.block_message or f"Shipping to {zone.state_name} is temporarily paused"
                    result.applied_rules.append(rule.name)
                    logger.info(f"Rule '{rule.name}' blocks shipping to {state_code} on {on_date}")
                    return result
            elif rule.rule_type == RuleType.SERVICE_REQUIREMENT:
                if actions.required_service and not service_set_by_rule:
                    result.required_service = actions.required_service
                    service_set_by_rule = True
            elif rule.rule_type == RuleType.TRANSIT_LIMIT:
                if actions.max_transit_days is not None:
                    if result.max_transit_days is None or actions.max_transit_days < result.max_transit_days:
                        result.max_transit_days = actions.max_transit_days
            elif rule.rule_type == RuleType.SURCHARGE:
                result.surcharge = round_money(result.surcharge + (actions.surcharge_amount or 0.0))
            result.applied_rules.append(rule.name)

        return result

    def get_shipping_options(self, state_code: str, on_date: Optional[date] = None) -> list[ShippingOption]:
        """Carrier services a customer in this state can choose from."""
        eligibility = self.check_shipping_eligibility(state_code, on_date)
        if not eligibility.allowed:
            return []

        services = [
            s for s in self.data_store.get_shipping_services()
            if s.is_enabled
            and (eligibility.required_service is None or s.service_code == eligibility.required_service)
            and (eligibility.max_transit_days is None or s.max_transit_days <= eligibility.max_transit_days)
        ]

        forced = self.settings.forced_service_for(eligibility.state_code)
        if forced and services:
            forced_services = [s for s in services if s.service_code == forced]
            if forced_services:
                services = forced_services
            else:
                logger.warning(
                    f"Forced service '{forced}' not available for {eligibility.state_code}, "
                    "offering all eligible services"
                )

        return [
            ShippingOption(
                service_code=s.service_code,
                carrier_code=s.carrier_code,
                name=s.name,
                min_transit_days=s.min_transit_days,
                max_transit_days=s.max_transit_days,
                rate=round_money(s.base_rate + eligibility.surcharge),
            )
            for s in services
        ]

    # =========================================================================
    # Carrier services
    # =========================================================================

    def list_shipping_services(self) -> list[CarrierService]:
        return self.data_store.get_shipping_services()

    def get_shipping_service(self, service_id: str) -> CarrierService:
        service = self.data_store.get("shipping_services", service_id)
        if not service:
            raise NotFoundError("Shipping service", service_id)
        return service

    def validate_shipping_service(self, data: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not str(data.get("name") or "").strip():
            errors["name"] = "Service name is required"
        if not str(data.get("service_code") or "").strip():
            errors["service_code"] = "Service code is required"

        min_days = data.get("min_transit_days")
        max_days = data.get("max_transit_days")
        if min_days is None or min_days < 1:
            errors["min_transit_days"] = "Minimum transit days must be at least 1"
        if max_days is None:
            errors["max_transit_days"] = "Maximum transit days is required"
        elif min_days is not None and max_days < min_days:
            errors["max_transit_days"] = "Max transit days must be greater than or equal to min transit days"

        base_rate = data.get("base_rate", 0.0)
        if base_rate is None or base_rate < 0:
            errors["base_rate"] = "Base rate cannot be negative"
        return errors

    def save_shipping_service(self, data: dict[str, Any], service_id: Optional[str] = None) -> CarrierService:
        """Create a service, or update it when service_id is given."""
        if service_id is not None:
            merged = self.get_shipping_service(service_id).model_dump()
            merged.update(data)
        else:
            merged = dict(data)
            merged.setdefault("carrier_code", "ups")

        errors = self.validate_shipping_service(merged)
        if errors:
            logger.warning(f"Shipping service rejected: {errors}")
            raise ValidationError(errors)

        merged["id"] = service_id or new_id("svc")
        service = build_model(CarrierService, merged)
        self.data_store.save("shipping_services", service)
        logger.info(f"Saved shipping service {service.service_code} ({service.id})")
        return service

    def toggle_shipping_service(self, service_id: str, enabled: Optional[bool] = None) -> CarrierService:
        service = self.get_shipping_service(service_id)
        service.is_enabled = (not service.is_enabled) if enabled is None else enabled
        self.data_store.save("shipping_services", service)
        logger.info(f"Shipping service {service.service_code} enabled={service.is_enabled}")
        return service

    # =========================================================================
    # Zones
    # =========================================================================

    def list_zones(self) -> list[ShippingZone]:
        return self.data_store.get_zones()

    def get_zone(self, state_code: str) -> ShippingZone:
        zone = self.data_store.get_zone_by_state(state_code)
        if not zone:
            raise NotFoundError("Shipping zone", state_code)
        return zone

    def validate_zone(self, zone: ShippingZone) -> dict[str, str]:
        errors: dict[str, str] = {}
        if zone.status == ZoneStatus.CONDITIONAL:
            if not zone.conditions:
                errors["conditions"] = "Conditional zones need at least one condition"
            else:
                bad = [m for m in zone.conditions.blocked_months if not 1 <= m <= 12]
                if bad:
                    errors["blocked_months"] = f"Invalid months: {bad}"
                if zone.conditions.max_transit_days is not None and zone.conditions.max_transit_days < 1:
                    errors["max_transit_days"] = "Max transit days must be at least 1"
        return errors

    def update_zone(self, state_code: str, changes: dict[str, Any]) -> ShippingZone:
        current = self.get_zone(state_code)
        merged = current.model_dump()
        merged.update(changes)
        merged["id"] = current.id
        merged["state_code"] = current.state_code
        merged["updated_at"] = utcnow()
        zone = build_model(ShippingZone, merged)

        errors = self.validate_zone(zone)
        if errors:
            raise ValidationError(errors)
        self.data_store.save("shipping_zones", zone)
        logger.info(f"Updated shipping zone {zone.state_code}: status={zone.status}")
        return zone

    # =========================================================================
    # Rules
    # =========================================================================

    def list_rules(self) -> list[ShippingZoneRule]:
        return sorted(self.data_store.get_zone_rules(), key=lambda r: (-r.priority, r.name))

    def validate_rule(self, rule: ShippingZoneRule) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not rule.name.strip():
            errors["name"] = "Rule name is required"

        bad_months = [m for m in rule.conditions.months if not 1 <= m <= 12]
        if bad_months:
            errors["months"] = f"Invalid months: {bad_months}"
        bad_states = [s for s in rule.conditions.states if not STATE_CODE_PATTERN.match(s)]
        if bad_states:
            errors["states"] = f"Invalid state codes: {bad_states}"

        if rule.effective_start and rule.effective_end and rule.effective_end < rule.effective_start:
            errors["effective_end"] = "End date must be on or after start date"

        actions = rule.actions
        if rule.rule_type == RuleType.SERVICE_REQUIREMENT and not actions.required_service:
            errors["required_service"] = "Select the required service"
        elif rule.rule_type == RuleType.TRANSIT_LIMIT and (
            actions.max_transit_days is None or actions.max_transit_days < 1
        ):
            errors["max_transit_days"] = "Max transit days must be at least 1"
        elif rule.rule_type == RuleType.SURCHARGE and (
            actions.surcharge_amount is None or actions.surcharge_amount <= 0
        ):
            errors["surcharge_amount"] = "Surcharge must be greater than 0"
        return errors

    def save_rule(self, data: dict[str, Any], rule_id: Optional[str] = None) -> ShippingZoneRule:
        if rule_id is not None:
            existing = self.data_store.get("shipping_zone_rules", rule_id)
            if not existing:
                raise NotFoundError("Shipping rule", rule_id)
            merged = existing.model_dump()
            merged.update(data)
        else:
            merged = dict(data)
        merged["id"] = rule_id or new_id("rule")

        conditions = merged.get("conditions") or {}
        if isinstance(conditions, dict) and conditions.get("states"):
            conditions["states"] = [s.strip().upper() for s in conditions["states"]]

        rule = build_model(ShippingZoneRule, merged)
        errors = self.validate_rule(rule)
        if errors:
            logger.warning(f"Shipping rule '{rule.name}' rejected: {errors}")
            raise ValidationError(errors)

        self.data_store.save("shipping_zone_rules", rule)
        logger.info(f"Saved shipping rule '{rule.name}' ({rule.id})")
        return rule

    def delete_rule(self, rule_id: str) -> None:
        if not self.data_store.delete("shipping_zone_rules", rule_id):
            raise NotFoundError("Shipping rule", rule_id)
        logger.info(f"Deleted shipping rule {rule_id}")
