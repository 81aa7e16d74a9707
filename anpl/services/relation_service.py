"""
Family relation table for FAMILY badminton categories.

Every pairing is stored in both directions (Father/Daughter and
Daughter/Father) so either participant can be the one registering.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Tuple

from anpl.errors import InvalidRelation
from anpl.models.models import Gender


@dataclass(frozen=True)
class RelationDefinition:
    category_name:    str
    self_relation:    str
    partner_relation: str
    self_gender:      str
    partner_gender:   str


_M, _F = Gender.MALE, Gender.FEMALE

_PAIRS: Tuple[Tuple[str, str, str, str, str], ...] = (
    # category            self        partner     self  partner
    ("Husband & Wife",   "Husband",  "Wife",     _M,   _F),
    ("Father Daughter",  "Father",   "Daughter", _M,   _F),
    ("Mother Daughter",  "Mother",   "Daughter", _F,   _F),
    ("Mother Son",       "Mother",   "Son",      _F,   _M),
    ("Father Son U15",   "Father",   "Son",      _M,   _M),
    ("Father Son 15+",   "Father",   "Son",      _M,   _M),
    ("Saas Bahu",        "Saas",     "Bahu",     _F,   _F),
)


def _build_table() -> Mapping[Tuple[str, str], RelationDefinition]:
    table: dict[Tuple[str, str], RelationDefinition] = {}
    for category, self_rel, partner_rel, self_g, partner_g in _PAIRS:
        forward = RelationDefinition(category, self_rel, partner_rel, self_g, partner_g)
        reverse = RelationDefinition(category, partner_rel, self_rel, partner_g, self_g)
        for d in (forward, reverse):
            table[(d.category_name.lower(), d.self_relation.lower())] = d
    return MappingProxyType(table)


RELATIONS: Mapping[Tuple[str, str], RelationDefinition] = _build_table()


def resolve_relation(category_name: str, self_relation: str) -> RelationDefinition:
    """Look up (category, self relation), case-insensitively."""
    key = ((category_name or "").strip().lower(), (self_relation or "").strip().lower())
    definition = RELATIONS.get(key)
    if definition is None:
        raise InvalidRelation(f"Invalid relation selected for {category_name}")
    return definition


def relation_options(category_name: str) -> List[Tuple[str, str]]:
    """(self, partner) choices offered for a FAMILY category."""
    name = (category_name or "").strip().lower()
    return [
        (d.self_relation, d.partner_relation)
        for (cat, _), d in RELATIONS.items()
        if cat == name
    ]
