from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .models import ChecklistItem, InspectionSection

ID_PREFIX = "id_"
_BASE36 = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class ChecklistSection:
    id: str
    title: str
    item_labels: Tuple[str, ...]
    is_sign_off: bool = False


Catalog = Sequence[ChecklistSection]

# Virginia Department of Health transport vehicle standards.
CHECKLIST_CATALOG: tuple[ChecklistSection, ...] = (
    ChecklistSection(
        "general",
        "General",
        (
            "Current State Inspection",
            "Exterior Clean",
            "Interior Clean",
            "Current EMS Permit",
            "Seatbelts for All",
            "Meds protected from climate extremes",
        ),
    ),
    ChecklistSection(
        "bls-equipment",
        "BLS Equipment",
        (
            "AED with set of pads (2) or combination device with manual option",
            "Pocket masks (2)",
            "O/P Airways (6) - Sizes 0-5 (1 each)",
            "N/P Airways (4) - Various sizes",
            "Soluble lubricant",
            "Adult BVM with Adult/Peds Mask (1 each)",
            "Infant BVM with Infant Mask",
            "Oxygen Apparatus - 1150 psi minimum",
            "Adult High Concentration (NRB) Masks (4)",
            "Peds High Concentration (NRB) Masks (4)",
            "Adult Nasal Cannulae (4)",
            "Child Nasal Cannulae (4)",
        ),
    ),
    ChecklistSection(
        "dressing-supplies",
        "Dressing/Supplies",
        (
            "Durable First Aid Kit",
            "Trauma Dressings 8x10 (4)",
            "Sterile 4x4s (24)",
            "Occlusive Dressings 3x8 (4)",
            "Assorted Roller Gauze (12)",
            "Cravats (10)",
            'Tape 1" and 2" (4 rolls total)',
            "Trauma Scissors (1)",
            "Emesis Basins (2)",
            "NS for Irrigation (4L)",
            "Alcohol preps (12)",
            "Exam Gloves - 10 pairs per size",
            "Disposable Gowns (4)",
            "Face-shield/Eyewear (4)",
            "Infectious Waste Bags (4)",
        ),
    ),
    ChecklistSection(
        "warning-tools",
        "Warning Devices/Tools",
        (
            'Adjustable Wrench, 10" (1)',
            "Standard Screwdriver (1)",
            "Phillips Screwdriver (1)",
            "Center Punch (1)",
            "Flares or Cones/Triangles (3)",
            "Current USDOT ERG (1)",
            "Emergency Lights All Sides",
            "Minimum 2 Flashing in Grill",
            "Audible Warning Device",
            'Agency Markings with 3" Min. Lettering',
            '4" Min. Reflective Band',
            "D-Cell Flashlight (1)",
            "ABC Extinguisher 5# (2)",
            "Traffic safety apparel (2)",
            "Sharps Container",
            "No Smoking Sign",
        ),
    ),
    ChecklistSection(
        "patient-assessment",
        "Patient Assessment Equipment",
        (
            "Adult Stethoscope (2)",
            "Peds Stethoscope (1)",
            "B/P Cuffs: Child, Adult, Large (1 each)",
            "Penlight (1)",
            "Current Medical Protocols (1)",
            "Pocket Mask (2)",
            "O/P Airways (6) - Sizes 0-5 (1 each)",
            "N/P Airways (4) - Various sizes",
            "Adult BVM with Adult/Peds Mask (1 each)",
            "Infant BVM with Infant Mask",
            "Oxygen Apparatus - 1150 psi minimum",
            "Adult High Concentration (NRB) Masks (4)",
            "Peds High Concentration (NRB) Masks (4)",
            "Adult Nasal Cannulae (4)",
            "Child Nasal Cannulae (4)",
        ),
    ),
    ChecklistSection(
        "suction",
        "Suction Equipment",
        (
            "Battery Powered Portable Suction",
            "Suction Catheters: Rigid tonsil tip",
            "FR18, FR14, FR8 & FR6 (2 each)",
        ),
    ),
    ChecklistSection(
        "splinting",
        "Splinting",
        (
            "Rigid Collars (SA, MA, LA & Peds - 3 each)",
            "Traction splint with ankle hitch (adult and pediatric)",
            "Padded board splint upper extremity (2)",
            "Padded board splint lower extremity (2)",
            "Backboard (2)",
            "Short spine board (1)",
            "Pediatric immobilization device (1)",
            "Cervical immobilization device set (2)",
        ),
    ),
    ChecklistSection(
        "obstetrical",
        "Obstetrical Kit",
        (
            "Pair of sterile surgical gloves (2)",
            "Scissors or other cutting instrument (1)",
            "Umbilical cord ties (4)",
            "Sanitary pads (1)",
            "Cloth/Disposable hand towels (2)",
            "Soft tip bulb syringe (1)",
        ),
    ),
    ChecklistSection(
        "linens",
        "Linens",
        (
            "Towels (2)",
            "Blankets (2)",
            "Pillows (2)",
            "Pillow cases (2)",
            "Sheets (4)",
            "Male Urinal (1)",
            "Bedpan and toilet paper (1)",
        ),
    ),
    ChecklistSection(
        "emt-enhanced",
        "EMT-Enhanced Equipment",
        (
            "Lockable Drug Compartment",
            "Drug Kit (EMT-E)",
            "Assorted IV, IM, SQ Delivery Devices",
            "Supra-glottic Airway (1)",
            "Complete ETT Kit (1)",
        ),
    ),
    ChecklistSection(
        "sign-off",
        "Inspection Sign-Off",
        ("Inspector Name", "Signature", "Date"),
        is_sign_off=True,
    ),
)


def get_section(section_id: str, catalog: Catalog = CHECKLIST_CATALOG) -> ChecklistSection:
    for section in catalog:
        if section.id == section_id:
            return section
    raise LookupError(f"Unknown checklist section '{section_id}'")


def section_ids(catalog: Catalog = CHECKLIST_CATALOG) -> tuple[str, ...]:
    return tuple(section.id for section in catalog)


def sign_off_ids(catalog: Catalog = CHECKLIST_CATALOG) -> frozenset[str]:
    """Sections rendered as the name and signature block, never as checkboxes."""
    return frozenset(section.id for section in catalog if section.is_sign_off)


def default_item_id(section_id: str, index: int) -> str:
    return f"{section_id}-{index}"


def default_items(section: ChecklistSection) -> List[ChecklistItem]:
    return [
        ChecklistItem(id=default_item_id(section.id, index), text=label, completed=False)
        for index, label in enumerate(section.item_labels)
    ]


def default_sections(catalog: Catalog = CHECKLIST_CATALOG) -> Dict[str, InspectionSection]:
    return {section.id: InspectionSection(title=section.title, items=default_items(section)) for section in catalog}


def generate_id() -> str:
    value = secrets.randbits(64)
    digits: list[str] = []
    while True:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
        if not value:
            break
    return ID_PREFIX + "".join(reversed(digits))
