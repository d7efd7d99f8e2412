"""Plain-text property summary shown before payment and in previews."""

from typing import Any, Mapping

from .clauses import (
    EARLY_EXIT_TWO_MONTHS,
    SECURITY_BANK_GUARANTEE,
    SECURITY_DEPOSIT,
    SECURITY_NOT_REQUIRED,
    SECURITY_PROMISSORY_NOTE,
    is_affirmative,
    parking_numbers,
    parse_count,
)
from .engine import flatten_answers
from .placeholders import UNSPECIFIED, format_date, stringify


def format_property_address(answers: Mapping[str, Any]) -> str:
    """Short one-line address, e.g. ``Herzl 12, apt 4, Tel Aviv``."""
    flat = flatten_answers(answers)
    street = " ".join(
        part for part in (stringify(flat.get("street")), stringify(flat.get("buildingNumber"))) if part
    )
    parts = [street] if street else []
    if stringify(flat.get("apartmentNumber")):
        parts.append(f"apt {stringify(flat.get('apartmentNumber'))}")
    if stringify(flat.get("propertyCity")):
        parts.append(stringify(flat.get("propertyCity")))
    return ", ".join(parts) or UNSPECIFIED


def _or_dash(value: Any) -> str:
    return stringify(value) or UNSPECIFIED


def _allowed(value: Any) -> str:
    if stringify(value) is None:
        return UNSPECIFIED
    return "allowed" if is_affirmative(value) else "not allowed"


def _securities(data: Mapping[str, Any]) -> str:
    selected = data.get("security_types") or []
    if not isinstance(selected, (list, tuple)):
        selected = [selected]
    selected = [stringify(item) for item in selected if stringify(item)]
    if not selected or selected == [SECURITY_NOT_REQUIRED]:
        return "not required"

    amounts = {
        SECURITY_PROMISSORY_NOTE: "guaranteeAmount",
        SECURITY_DEPOSIT: "depositAmount",
        SECURITY_BANK_GUARANTEE: "bankGuaranteeAmount",
    }
    parts = []
    for kind in selected:
        if kind == SECURITY_NOT_REQUIRED:
            continue
        amount = stringify(data.get(amounts[kind])) if kind in amounts else None
        parts.append(f"{kind} ({amount})" if amount else kind)
    return ", ".join(parts)


def generate_summary_section(answers: Mapping[str, Any]) -> str:
    data = flatten_answers(answers)

    address = _or_dash(data.get("street"))
    for key, label in (("buildingNumber", " "), ("apartmentNumber", ", apt "), ("floor", ", floor "),
                       ("entrance", ", entrance "), ("propertyCity", ", ")):
        if stringify(data.get(key)):
            address += f"{label}{stringify(data.get(key))}"

    summary = [
        "Property summary:",
        "",
        f"• Address: {address}",
        f"• Rooms: {_or_dash(data.get('apartmentRooms'))}",
        f"• Contents: {_or_dash(data.get('apartmentFeatures'))}",
    ]

    if is_affirmative(data.get("hasParking")):
        numbers = parking_numbers(data.get("parkingNumber"))
        if numbers:
            label = "numbers" if parse_count(data.get("parkingLotCount"), 99) > 1 or len(numbers) > 1 else "number"
            summary.append(f"• Parking: yes, parking {label} {', '.join(numbers)}")
        else:
            summary.append("• Parking: yes")
    else:
        summary.append("• Parking: no")

    if is_affirmative(data.get("hasStorage")):
        number = stringify(data.get("storageNumber"))
        summary.append(f"• Storage: yes, storage number {number}" if number else "• Storage: yes")
    else:
        summary.append("• Storage: no")

    if stringify(data.get("moveInDate")) or stringify(data.get("rentEndDate")):
        start = format_date(data["moveInDate"]) if stringify(data.get("moveInDate")) else UNSPECIFIED
        end = format_date(data["rentEndDate"]) if stringify(data.get("rentEndDate")) else UNSPECIFIED
        summary.append(f"• Lease period: {start} - {end}")

    summary.append(f"• Monthly rent: {_or_dash(data.get('monthlyRent'))}")
    summary.append(f"• Payment method: {_or_dash(data.get('paymentMethod'))}")
    summary.append(f"• Securities: {_securities(data)}")

    if is_affirmative(data.get("hasExtensionOption")) and stringify(data.get("extensionDuration")):
        summary.append(f"• Extension option: {stringify(data.get('extensionDuration'))}")

    if is_affirmative(data.get("allowEarlyExit")):
        if stringify(data.get("earlyExitCompensationType")) == EARLY_EXIT_TWO_MONTHS:
            summary.append(f"• Early exit: yes, compensation: {EARLY_EXIT_TWO_MONTHS}")
        elif stringify(data.get("earlyExitCompensation")):
            summary.append(f"• Early exit: yes, compensation: {stringify(data.get('earlyExitCompensation'))}")
        else:
            summary.append("• Early exit: yes")

    summary.append(f"• Pets: {_allowed(data.get('allowPets'))}")
    summary.append(f"• Subletting: {_allowed(data.get('allowSublet'))}")

    return "\n".join(summary)
