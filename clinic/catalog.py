"""
Doctor catalog for the PinkHealth Clinic Intake Service

Static, read-only registry of doctors by specialty plus the keyword
classifier that maps a free-text health concern onto a specialty.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from clinic.models import Doctor, Slot

MENU_NUMBER = re.compile(r"[0-9]+")


SPECIALTY_NAMES = {
    "general": "General Medicine",
    "cardiology": "Cardiology",
    "orthopedics": "Orthopedics",
    "dental": "Dental",
}

# Checked in order; first hit wins
CONCERN_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("cardiology", ("heart", "blood pressure")),
    ("orthopedics", ("bone", "joint")),
    ("dental", ("dental", "tooth", "teeth")),
)

DEFAULT_DOCTORS: Tuple[Doctor, ...] = (
    Doctor(
        id="dr_smith",
        name="Dr. Sarah Smith",
        specialty="General Medicine",
        specialty_key="general",
        fee=500,
        rating=4.8,
        experience=12,
        qualifications="MBBS, MD (Internal Medicine)",
        slots=(Slot(0, "2:00 PM"), Slot(1, "10:30 AM"), Slot(2, "11:00 AM")),
    ),
    Doctor(
        id="dr_wilson",
        name="Dr. Lisa Wilson",
        specialty="General Medicine",
        specialty_key="general",
        fee=450,
        rating=4.6,
        experience=8,
        qualifications="MBBS, MD (Family Medicine)",
        slots=(Slot(0, "4:00 PM"), Slot(1, "9:30 AM"), Slot(2, "6:00 PM")),
    ),
    Doctor(
        id="dr_carter",
        name="Dr. John Carter",
        specialty="Cardiology",
        specialty_key="cardiology",
        fee=800,
        rating=4.9,
        experience=15,
        qualifications="MBBS, MD, DM (Cardiology)",
        slots=(Slot(0, "2:30 PM"), Slot(1, "10:00 AM"), Slot(2, "4:00 PM")),
    ),
    Doctor(
        id="dr_brown",
        name="Dr. Michael Brown",
        specialty="Orthopedics",
        specialty_key="orthopedics",
        fee=700,
        rating=4.7,
        experience=20,
        qualifications="MBBS, MS (Orthopedics)",
        slots=(Slot(0, "3:00 PM"), Slot(1, "9:30 AM"), Slot(2, "4:30 PM")),
    ),
    Doctor(
        id="dr_davis",
        name="Dr. Emma Davis",
        specialty="Dental",
        specialty_key="dental",
        fee=600,
        rating=4.8,
        experience=10,
        qualifications="BDS, MDS (Oral Surgery)",
        slots=(Slot(0, "1:00 PM"), Slot(1, "10:30 AM"), Slot(2, "5:00 PM")),
    ),
)


def classify_concern(text: str) -> str:
    """
    Map a free-text health concern onto a specialty key.

    Args:
        text: Concern as typed by the user

    Returns:
        Specialty key; "general" when no keyword matches
    """
    lowered = text.lower()
    for specialty, keywords in CONCERN_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return specialty
    return "general"


class Catalog:
    """Read-only doctor registry"""

    def __init__(self, doctors: Sequence[Doctor] = DEFAULT_DOCTORS):
        if not doctors:
            raise ValueError("catalog needs at least one doctor")
        self._doctors: Tuple[Doctor, ...] = tuple(doctors)
        self._by_id: Dict[str, Doctor] = {doctor.id: doctor for doctor in self._doctors}
        if "general" not in {doctor.specialty_key for doctor in self._doctors}:
            raise ValueError("catalog needs a general medicine doctor")

    def all(self) -> List[Doctor]:
        return list(self._doctors)

    def get(self, doctor_id: Optional[str]) -> Optional[Doctor]:
        if doctor_id is None:
            return None
        return self._by_id.get(doctor_id)

    def for_specialty(self, specialty_key: str) -> List[Doctor]:
        """Doctors for a specialty, falling back to general medicine"""
        doctors = [d for d in self._doctors if d.specialty_key == specialty_key]
        if not doctors:
            doctors = [d for d in self._doctors if d.specialty_key == "general"]
        return doctors

    def recommend(self, specialty_key: str) -> Doctor:
        return self.for_specialty(specialty_key)[0]

    def by_menu_number(self, option: str) -> Optional[Doctor]:
        """Resolve a 1-based number from the numbered doctor list"""
        if not MENU_NUMBER.fullmatch(option):
            return None
        index = int(option) - 1
        if 0 <= index < len(self._doctors):
            return self._doctors[index]
        return None

    def find_by_name(self, text: str) -> Optional[Doctor]:
        """
        Case-insensitive name lookup.

        Accepts "Dr. Smith", "book dr smith", "carter" and similar. Returns
        None when nothing or more than one doctor matches.
        """
        query = re.sub(r"^(book|with)\s+", "", text.strip().lower())
        query = re.sub(r"^dr\.?\s*", "", query).strip()
        if len(query) < 3:
            return None

        matches = [
            doctor for doctor in self._doctors
            if query in doctor.name.lower() or query in doctor.name.lower().replace("dr. ", "")
        ]
        if len(matches) == 1:
            return matches[0]

        # Fall back to surname match
        surname_matches = [d for d in self._doctors if d.name.lower().split()[-1] == query.split()[-1]]
        if len(surname_matches) == 1:
            return surname_matches[0]
        return None

    def fee_table(self) -> Dict[str, Tuple[int, int]]:
        """Specialty name -> (lowest fee, highest fee)"""
        table: Dict[str, Tuple[int, int]] = {}
        for doctor in self._doctors:
            low, high = table.get(doctor.specialty, (doctor.fee, doctor.fee))
            table[doctor.specialty] = (min(low, doctor.fee), max(high, doctor.fee))
        return table
