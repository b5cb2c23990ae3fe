"""Test data builders."""


def subject(name: str, obtained: float, full: float = 100, **extra) -> dict:
    """Raw subject score with theory marks only."""
    return {
        "subject_name": name,
        "subject_code": name[:3].upper(),
        "theory_full_marks": full,
        "theory_obtained": obtained,
        **extra,
    }
