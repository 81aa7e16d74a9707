"""
Eligibility checks for badminton categories.

All functions are pure: they read the participant / category and either
return a verdict or raise a participant-labelled ValidationFailed.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Optional

from anpl.errors import MissingDocuments, ValidationFailed
from anpl.models.models import Category, CategoryType, Gender, Participant

logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"[^0-9]")

# Keyword sets as observed in the category catalogue; not exhaustive.
_FEMALE_KEYWORDS = ("women", "womens", "girl", "ladies", "female")
_MALE_KEYWORDS   = ("boys", "men's", "mens", " men", "male")


def calculate_age(dob: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Completed years between dob and today. None when dob is unknown."""
    if dob is None:
        return None
    today = today or date.today()
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years


def validate_age_limit(age_limit: Optional[str], age: Optional[int]) -> bool:
    """
    Check an age against a category age limit such as "U15" or "35+".

    "OPEN"  → always eligible
    "U15"   → age <= 15
    "35+"   → age >= 35

    Anything that cannot be parsed fails open (eligible) and is logged.
    """
    if age is None or age_limit is None or not age_limit.strip():
        return True
    normalized = age_limit.strip().upper()
    if normalized == "OPEN":
        return True
    try:
        if normalized.startswith("U"):
            return age <= int(_DIGITS_RE.sub("", normalized[1:]))
        if normalized.endswith("+"):
            return age >= int(_DIGITS_RE.sub("", normalized.replace("+", "")))
    except ValueError as e:
        logger.warning("Unable to parse age limit %r: %s", age_limit, e)
        return True
    logger.warning("Unrecognised age limit %r, treating as open", age_limit)
    return True


def required_gender(category: Category) -> Optional[str]:
    """
    Gender a non-family category is restricted to, or None.

    An explicit gender_group wins; otherwise the display name is scanned
    for keywords. FAMILY categories get their genders from the relation table.
    """
    if category is None or category.category_type == CategoryType.FAMILY:
        return None
    if category.gender_group:
        return category.gender_group
    if not category.name:
        return None
    value = category.name.lower()
    if any(k in value for k in _FEMALE_KEYWORDS):
        return Gender.FEMALE
    if value.startswith("men") or any(k in value for k in _MALE_KEYWORDS):
        return Gender.MALE
    return None


def ensure_documents(participant: Participant, label: str = "Player") -> None:
    if not participant.has_documents:
        raise MissingDocuments(
            f"{label} must upload identity document front and back images "
            f"before registering for this category"
        )


def ensure_gender(
    required: Optional[str],
    participant: Participant,
    label: str,
    category_name: str,
) -> None:
    if required is None:
        return
    if participant.gender is None:
        raise ValidationFailed(
            f"{label} must update gender information to enroll in {category_name}"
        )
    if participant.gender != required:
        raise ValidationFailed(f"{label} must be {required.lower()} for {category_name}")


def validate_participant_for_category(
    category: Category,
    participant: Optional[Participant],
    label: str = "Player",
    today: Optional[date] = None,
) -> None:
    """Age + gender eligibility of one participant for one category."""
    if participant is None:
        raise ValidationFailed(f"{label} details are required")

    age = calculate_age(participant.date_of_birth, today)
    if not validate_age_limit(category.age_limit, age):
        raise ValidationFailed(f"{label} does not meet the age criteria for {category.name}")

    ensure_gender(required_gender(category), participant, label, category.name)
