"""Structural clauses.

A structural marker ``{{>name}}`` (or ``{{>name arg}}``) is rendered by the
renderer registered under ``name``. A renderer returning None means the
clause is not part of this contract: the merge engine drops the whole line
that carries the marker, and the renumbering pass closes the gap.

Renderers receive the flattened answers and never raise on missing data.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..models.signers import (
    MAX_GUARANTORS,
    SignerType,
    role_heading,
    role_tag,
    signature_placeholder,
)
from .conditions import is_affirmative
from .placeholders import UNSPECIFIED, emphasize, escape_value, format_value, stringify

logger = logging.getLogger(__name__)

# Wizard option values
INSURANCE_NONE = "No insurance required"
INSURANCE_THIRD_PARTY = "Third-party insurance only"
INSURANCE_ADDITIONAL_INSURED = "Third-party insurance + landlord as additional insured"
INSURANCE_WAIVER_OF_SUBROGATION = "Third-party insurance + waiver of subrogation"
INSURANCE_CONTENTS = "Contents insurance (optional)"

SECURITY_NOT_REQUIRED = "Not required"
SECURITY_PROMISSORY_NOTE = "Promissory note and guarantors"
SECURITY_DEPOSIT = "Cash deposit"
SECURITY_BANK_GUARANTEE = "Bank guarantee"

LATE_INTEREST_NONE = "No late interest"
LATE_INTEREST_STANDARD = "0.03% per day (standard)"
LATE_INTEREST_FIXED = "Fixed amount"

EVACUATION_NONE = "No usage fees"
EVACUATION_TWO_PERCENT = "2% of the daily rent"
EVACUATION_FIVE_PERCENT = "5% of the daily rent"
EVACUATION_FIXED = "Fixed daily amount"

TENANT_FIXES_BROAD = "Anything that is not infrastructure"
EARLY_EXIT_TWO_MONTHS = "2 months' rent or a replacement tenant"


@dataclass
class ClauseContext:
    answers: Mapping[str, Any]
    tenants: List[Mapping[str, Any]] = field(default_factory=list)
    emphasis: bool = True

    def value(self, key: str) -> str:
        return format_value(key, self.answers.get(key), self.emphasis)

    def strong(self, text: Any) -> str:
        printable = stringify(text)
        return emphasize(escape_value(printable) if printable else UNSPECIFIED, self.emphasis)

    def affirmative(self, key: str) -> bool:
        return is_affirmative(self.answers.get(key))

    def as_list(self, key: str) -> List[str]:
        raw = self.answers.get(key)
        if raw is None:
            return []
        items = raw if isinstance(raw, (list, tuple)) else [raw]
        return [str(item).strip() for item in items if str(item).strip()]


Renderer = Callable[[ClauseContext, Optional[str], Optional[int]], Optional[str]]

CLAUSE_RENDERERS: Dict[str, Renderer] = {}


def clause(name: str):
    def register(func: Renderer) -> Renderer:
        CLAUSE_RENDERERS[name] = func
        return func
    return register


def guarantor_count(answers: Mapping[str, Any]) -> int:
    """Guarantors that are part of the deal (0 to 2).

    Guarantors only exist alongside a promissory note; without it the count
    field is ignored.
    """
    securities = answers.get("security_types") or []
    if isinstance(securities, str):
        securities = [securities]
    if SECURITY_PROMISSORY_NOTE not in securities:
        return 0
    return parse_count(answers.get("guarantorsCount"), MAX_GUARANTORS)


def parse_count(value: Any, upper: int) -> int:
    try:
        count = int(str(value).strip())
    except (TypeError, ValueError):
        return 0
    return max(0, min(count, upper))


def parking_numbers(value: Any) -> List[str]:
    """Parking numbers from a list, a comma-separated string, or both."""
    items = value if isinstance(value, (list, tuple)) else [value]
    numbers = []
    for item in items:
        if item is None:
            continue
        numbers.extend(part.strip() for part in str(item).split(",") if part.strip())
    return numbers


def render_marker(name: str, context: ClauseContext, arg: Optional[str] = None, entry: Optional[int] = None) -> Optional[str]:
    renderer = CLAUSE_RENDERERS.get(name)
    if renderer is None:
        logger.warning(f"Unknown structural marker '{name}' dropped from contract")
        return None
    return renderer(context, arg, entry)


# ---------------------------------------------------------------------------
# Section 1: the property
# ---------------------------------------------------------------------------

@clause("propertyAddress")
def property_address_clause(ctx, arg, entry):
    parts = []
    labelled = (
        ("street", "{}"),
        ("buildingNumber", "building no. {}"),
        ("apartmentNumber", "apartment no. {}"),
        ("floor", "floor {}"),
        ("entrance", "entrance {}"),
        ("propertyCity", "in the city of {}"),
    )
    for key, pattern in labelled:
        printable = stringify(ctx.answers.get(key))
        if printable:
            parts.append(pattern.format(escape_value(printable)))
    address = ", ".join(parts) if parts else UNSPECIFIED
    return f'The property is an apartment at {emphasize(address, ctx.emphasis)} (hereinafter: "the Property").'


@clause("parkingClause")
def parking_clause(ctx, arg, entry):
    if not ctx.affirmative("hasParking"):
        return None
    numbers = parking_numbers(ctx.answers.get("parkingNumber"))
    plural = len(numbers) > 1 or parse_count(ctx.answers.get("parkingLotCount"), 99) > 1
    if not numbers:
        return "The Property includes parking spaces." if plural else "The Property includes a parking space."
    if plural:
        return f"The Property includes parking spaces, parking numbers: {ctx.strong(', '.join(numbers))}."
    return f"The Property includes a parking space, parking number: {ctx.strong(numbers[0])}."


@clause("storageClause")
def storage_clause(ctx, arg, entry):
    if not ctx.affirmative("hasStorage"):
        return None
    number = stringify(ctx.answers.get("storageNumber"))
    if not number:
        return "The Property includes a storage room."
    return f"The Property includes a storage room, storage number: {ctx.strong(number)}."


# ---------------------------------------------------------------------------
# Section 2: lease period, extension, early exit
# ---------------------------------------------------------------------------

@clause("noExtensionClause")
def no_extension_clause(ctx, arg, entry):
    if ctx.affirmative("hasExtensionOption"):
        return None
    return ("The parties agree that the lease period is fixed and final and may not be "
            "extended beyond the end date stated above.")


@clause("extensionRentClause")
def extension_rent_clause(ctx, arg, entry):
    if not ctx.affirmative("hasExtensionOption") or not stringify(ctx.answers.get("extensionRent")):
        return None
    return f"The rent for the extension period shall be {ctx.value('extensionRent')} per month."


@clause("earlyExitCompensationClause")
def early_exit_compensation_clause(ctx, arg, entry):
    compensation_type = stringify(ctx.answers.get("earlyExitCompensationType"))
    amount = stringify(ctx.answers.get("earlyExitCompensation"))
    if compensation_type == EARLY_EXIT_TWO_MONTHS:
        return "2 months' rent or providing a replacement tenant, whichever comes first"
    if amount:
        return f"the sum of {ctx.strong(amount)}"
    if ctx.affirmative("allowEarlyExit"):
        return "2 months' rent or providing a replacement tenant, whichever comes first"
    return "an amount to be agreed between the parties"


# ---------------------------------------------------------------------------
# Section 5: late payment and eviction
# ---------------------------------------------------------------------------

@clause("lateInterestClause")
def late_interest_clause(ctx, arg, entry):
    choice = stringify(ctx.answers.get("lateInterestType"))
    if choice == LATE_INTEREST_NONE:
        return "No late interest shall be charged for any late payment."
    if choice == LATE_INTEREST_STANDARD:
        return "For any late payment the Tenant shall pay late interest at a rate of 0.03% per day."
    if choice == LATE_INTEREST_FIXED:
        return f"For any late payment the Tenant shall pay late interest of {ctx.value('lateInterestFixedAmount')} per day."
    return None


@clause("evacuationPenaltyClause")
def evacuation_penalty_clause(ctx, arg, entry):
    choice = stringify(ctx.answers.get("evacuationPenaltyType"))
    prefix = "For any delay in vacating the Property"
    if choice == EVACUATION_NONE:
        return f"{prefix}, no usage fees shall be charged."
    if choice == EVACUATION_TWO_PERCENT:
        return f"{prefix}, the Tenant shall pay usage fees of 2% of the daily rent for each day of delay."
    if choice == EVACUATION_FIVE_PERCENT:
        return f"{prefix}, the Tenant shall pay usage fees of 5% of the daily rent for each day of delay."
    if choice == EVACUATION_FIXED:
        return f"{prefix}, the Tenant shall pay usage fees of {ctx.value('evacuationPenaltyFixedAmount')} for each day of delay."
    return None


# ---------------------------------------------------------------------------
# Section 6: maintenance
# ---------------------------------------------------------------------------

@clause("maintenanceClause")
def maintenance_clause(ctx, arg, entry):
    items = ctx.as_list("maintenance_responsibility")
    if not items:
        return "[No items selected, please update this clause]"
    if len(items) > 1:
        listed = ", ".join(items[:-1]) + " and " + items[-1]
    else:
        listed = items[0]
    return (f"The Landlord shall be responsible for repairing faults in {ctx.strong(listed)}, "
            f"to the extent they result from natural wear or infrastructure defects.")


@clause("tenantFixesClause")
def tenant_fixes_clause(ctx, arg, entry):
    if stringify(ctx.answers.get("tenant_fixes")) == TENANT_FIXES_BROAD:
        return ("The Tenant shall be responsible for any fault that is not part of the Property's "
                "infrastructure, including ordinary use and routine maintenance.")
    return ("The Tenant shall be responsible for replacing light bulbs, cleaning filters and repairing "
            "damage caused by improper use.")


@clause("tenantSelfRepairClause")
def tenant_self_repair_clause(ctx, arg, entry):
    allowed = stringify(ctx.answers.get("allow_tenant_fix")) or ""
    if is_affirmative(allowed) or allowed.lower().startswith("yes"):
        return ("If the Landlord has not handled a fault within 14 business days, the Tenant may repair it "
                "and be reimbursed, provided the Tenant gave prior notice with a reasonable quote and the "
                "Landlord did not object within 7 business days.")
    return ("The Tenant may not carry out repairs independently. Any repair shall be made only by the "
            "Landlord or a professional on the Landlord's behalf.")


# ---------------------------------------------------------------------------
# Sections 8 and 9: use of the property, utilities
# ---------------------------------------------------------------------------

@clause("petsClause")
def pets_clause(ctx, arg, entry):
    if ctx.affirmative("allowPets"):
        return "Keeping pets in the Property is permitted, provided no damage or nuisance is caused."
    return "Keeping pets in the Property is not permitted."


@clause("subletClause")
def sublet_clause(ctx, arg, entry):
    if ctx.affirmative("allowSublet"):
        return ("The Tenant may sublet or host roommates, subject to the Landlord's prior written consent.")
    return "The Tenant shall not assign rights, sublet, or host roommates."


@clause("utilitiesClause")
def utilities_clause(ctx, arg, entry):
    utilities = ctx.as_list("tenant_utilities")
    if not utilities:
        return "Charges applying to the occupier of the Property are the Tenant's responsibility."
    return ("Charges applying to the occupier of the Property are the Tenant's responsibility, "
            f"including: {ctx.strong(', '.join(utilities))}.")


# ---------------------------------------------------------------------------
# Section 10: insurance
# ---------------------------------------------------------------------------

@clause("insuranceClause")
def insurance_clause(ctx, arg, entry):
    choice = stringify(ctx.answers.get("insuranceTypes"))
    if choice == INSURANCE_NONE:
        return ("10.1 At the Landlord's request the Tenant is under no obligation to take out insurance of any "
                "kind, and the parties waive any future claim in this regard, subject to each party's ordinary "
                "contractual and tort liability.")

    policies = {
        INSURANCE_THIRD_PARTY: "a valid third-party insurance policy.",
        INSURANCE_ADDITIONAL_INSURED: "a valid third-party insurance policy naming the Landlord as an additional insured.",
        INSURANCE_WAIVER_OF_SUBROGATION: "a valid third-party insurance policy including a waiver of subrogation towards the Landlord.",
        INSURANCE_CONTENTS: "a valid contents insurance policy, should the Tenant choose to do so.",
    }
    policy = policies.get(choice) or f"a valid insurance policy of type {ctx.strong(choice)}."
    return "\n".join([
        f"10.1 Throughout the lease period the Tenant undertakes to hold {policy}",
        "10.2 A copy of the policy shall be delivered to the Landlord at least 3 business days before the move-in date.",
    ])


# ---------------------------------------------------------------------------
# Section 12: securities and the guarantee appendix
# ---------------------------------------------------------------------------

@clause("securitiesClause")
def securities_clause(ctx, arg, entry):
    securities = ctx.as_list("security_types")
    if not securities or SECURITY_NOT_REQUIRED in securities:
        return "\n".join([
            "12.1 The Landlord declares that no securities are required from the Tenant under this agreement.",
            "12.2 Notwithstanding the above, all of the Tenant's liabilities under this agreement remain in force, "
            "and not providing securities is not a waiver of the Landlord's rights under law or agreement.",
        ])

    has_note = SECURITY_PROMISSORY_NOTE in securities
    lines = ["12.1 Before moving in, the Tenant shall provide the following securities:"]
    if has_note and stringify(ctx.answers.get("guaranteeAmount")):
        note = f"• A promissory note for {ctx.value('guaranteeAmount')}"
        if stringify(ctx.answers.get("guarantorsCount")):
            note += f", with {ctx.value('guarantorsCount')} guarantors to the Landlord's satisfaction"
        lines.append(note + ";")
    if SECURITY_DEPOSIT in securities and stringify(ctx.answers.get("depositAmount")):
        lines.append(f"• A deposit of {ctx.value('depositAmount')};")
    if SECURITY_BANK_GUARANTEE in securities and stringify(ctx.answers.get("bankGuaranteeAmount")):
        lines.append(f"• A bank guarantee of {ctx.value('bankGuaranteeAmount')};")

    if has_note:
        lines.append("12.2 The guarantees and the promissory note are irrevocable and also apply to any extension periods.")
    lines.append("12.3 Any security shall be realized only after 7 days' written notice.")
    lines.append("12.4 Where the value of a security is reduced by its realization, the Tenant shall restore the "
                 "amount within 7 business days.")
    if stringify(ctx.answers.get("guaranteeReturnDays")):
        lines.append(f"12.5 The securities shall be returned to the Tenant within {ctx.value('guaranteeReturnDays')} "
                     "days of actual vacating, provided all required receipts were presented and no damage was caused.")
    return "\n".join(lines)


@clause("guarantorsSection")
def guarantors_section(ctx, arg, entry):
    count = guarantor_count(ctx.answers)
    if count == 0:
        return None
    lines = [
        "16. Appendix: Letter of Guarantee",
        "",
        "We, the undersigned, hereby guarantee to the Landlord all of the Tenant's obligations under the above "
        "lease agreement. We confirm that we have read the agreement, in particular the securities clauses "
        "(section 12), and expressly agree to guarantee those obligations.",
    ]
    for number in range(1, count + 1):
        lines.append(
            f"• Guarantor {number}: Name: {ctx.value(f'guarantor{number}Name')} | "
            f"ID: {ctx.value(f'guarantor{number}Id')} | "
            f"Address: {ctx.value(f'guarantor{number}Address')} | "
            f"Phone: {ctx.value(f'guarantor{number}Phone')}"
        )
        lines.append(signature_placeholder(role_tag(SignerType.GUARANTOR, number - 1)))
    lines.append("")
    lines.append("Date of signature: ________________________")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Section 13: vacating
# ---------------------------------------------------------------------------

@clause("signClause")
def sign_clause(ctx, arg, entry):
    if ctx.affirmative("allowSign"):
        return ("Towards the end of the lease period the Landlord may place a sign at the entrance or on the "
                "Property for a future sale or lease.")
    return "The Landlord may not place a sign at the entrance or on the Property for a future sale or lease."


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def _party_tag(ctx: ClauseContext, arg: Optional[str], entry: Optional[int]) -> Optional[str]:
    if not arg:
        return None
    try:
        signer_type = SignerType(arg.strip().lower())
    except ValueError:
        logger.warning(f"Unknown signer type '{arg}' in signature marker")
        return None
    if signer_type == SignerType.TENANT:
        count = max(len(ctx.tenants), 1)
        return role_tag(signer_type, entry or 0, count if entry is not None else 1)
    return role_tag(signer_type, entry or 0)


@clause("role")
def role_clause(ctx, arg, entry):
    tag = _party_tag(ctx, arg, entry)
    return role_heading(tag) if tag else None


@clause("signature")
def signature_clause(ctx, arg, entry):
    # No role argument: an untagged empty slot
    return signature_placeholder(_party_tag(ctx, arg, entry))
