"""NIST 800-53 control family codes, names and evidence targets."""

# Assessment order. Families are always scanned in this sequence.
CONTROL_FAMILIES: tuple[str, ...] = (
    "AC", "AU", "SC", "SI", "CM", "CP", "IA", "IR", "MA",
    "MP", "PE", "PL", "PS", "RA", "SA", "CA", "AT", "PM",
)

FAMILY_NAMES: dict[str, str] = {
    "AC": "Access Control",
    "AU": "Audit and Accountability",
    "AT": "Awareness and Training",
    "CM": "Configuration Management",
    "CP": "Contingency Planning",
    "IA": "Identification and Authentication",
    "IR": "Incident Response",
    "MA": "Maintenance",
    "MP": "Media Protection",
    "PE": "Physical and Environmental Protection",
    "PL": "Planning",
    "PM": "Program Management",
    "PS": "Personnel Security",
    "RA": "Risk Assessment",
    "CA": "Security Assessment and Authorization",
    "SC": "System and Communications Protection",
    "SI": "System and Information Integrity",
    "SA": "System and Services Acquisition",
}

# Distinct evidence types expected for a complete package.
EVIDENCE_TARGETS: dict[str, int] = {
    "AC": 5, "AU": 4, "SC": 5, "IA": 4, "CM": 4,
    "IR": 3, "RA": 3, "CA": 4, "SI": 4, "CP": 3,
}
DEFAULT_EVIDENCE_TARGET = 3

ALL_FAMILIES = "All"


def family_name(code: str) -> str:
    return FAMILY_NAMES.get(code.upper(), code)


def evidence_target(code: str) -> int:
    return EVIDENCE_TARGETS.get(code.upper(), DEFAULT_EVIDENCE_TARGET)


def family_of(control_id: str) -> str:
    """Family prefix of a control id, e.g. ``"AC-2(1)"`` -> ``"AC"``."""
    return control_id.split("-")[0].upper()
