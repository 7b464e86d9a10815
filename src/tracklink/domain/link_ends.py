# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Link ends and observable types.

A link end is a role in an observation geometry (transmitter, receiver,
...) bound to a body and an optional reference point on that body.
Each observable type has a fixed size and a fixed set of roles.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Mapping


class LinkEndType(Enum):
    TRANSMITTER = "transmitter"
    REFLECTOR = "reflector"
    RECEIVER = "receiver"
    OBSERVED_BODY = "observed_body"


_LINK_END_ORDER = (
    LinkEndType.TRANSMITTER,
    LinkEndType.REFLECTOR,
    LinkEndType.RECEIVER,
    LinkEndType.OBSERVED_BODY,
)


class ObservableType(Enum):
    ONE_WAY_RANGE = "one_way_range"
    ONE_WAY_DOPPLER = "one_way_doppler"
    ANGULAR_POSITION = "angular_position"
    POSITION_OBSERVABLE = "position_observable"


@dataclass(frozen=True)
class LinkEndId:
    """Body name plus reference point name ('' = body centre)."""
    body_name: str
    reference_point: str = ""


@dataclass(frozen=True)
class LinkEnds:
    """Immutable, hashable mapping from link-end role to LinkEndId.

    Entries are stored in canonical role order, so two LinkEnds built
    from the same roles compare and hash equal.
    """
    entries: tuple[tuple[LinkEndType, LinkEndId], ...]

    @classmethod
    def of(cls, mapping: Mapping[LinkEndType, "LinkEndId | str"]) -> "LinkEnds":
        """Build from a mapping; plain strings are taken as body names."""
        entries = []
        for role in _LINK_END_ORDER:
            if role not in mapping:
                continue
            value = mapping[role]
            if isinstance(value, str):
                value = LinkEndId(value)
            entries.append((role, value))
        unknown = set(mapping) - set(_LINK_END_ORDER)
        if unknown:
            raise ValueError(f"Unknown link end type(s): {sorted(map(str, unknown))}")
        return cls(entries=tuple(entries))

    def __getitem__(self, role: LinkEndType) -> LinkEndId:
        for key, value in self.entries:
            if key == role:
                return value
        raise KeyError(role)

    def __contains__(self, role: object) -> bool:
        return any(key == role for key, _ in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[LinkEndType]:
        return (key for key, _ in self.entries)

    def roles(self) -> tuple[LinkEndType, ...]:
        return tuple(key for key, _ in self.entries)

    def items(self) -> tuple[tuple[LinkEndType, LinkEndId], ...]:
        return self.entries


@dataclass(frozen=True)
class _ObservableInfo:
    name: str
    size: int
    link_end_roles: tuple[LinkEndType, ...]


_OBSERVABLE_INFO: dict[ObservableType, _ObservableInfo] = {
    ObservableType.ONE_WAY_RANGE: _ObservableInfo(
        "OneWayRange", 1, (LinkEndType.TRANSMITTER, LinkEndType.RECEIVER),
    ),
    ObservableType.ONE_WAY_DOPPLER: _ObservableInfo(
        "OneWayDoppler", 1, (LinkEndType.TRANSMITTER, LinkEndType.RECEIVER),
    ),
    ObservableType.ANGULAR_POSITION: _ObservableInfo(
        "AngularPosition", 2, (LinkEndType.TRANSMITTER, LinkEndType.RECEIVER),
    ),
    ObservableType.POSITION_OBSERVABLE: _ObservableInfo(
        "CartesianPosition", 3, (LinkEndType.OBSERVED_BODY,),
    ),
}


def _info(observable_type: ObservableType) -> _ObservableInfo:
    try:
        return _OBSERVABLE_INFO[observable_type]
    except KeyError:
        raise ValueError(f"Unrecognized observable type: {observable_type!r}") from None


def observable_name(observable_type: ObservableType) -> str:
    """Human-readable name of an observable type."""
    return _info(observable_type).name


def observable_type_from_name(name: str) -> ObservableType:
    """Inverse of observable_name."""
    for observable_type, info in _OBSERVABLE_INFO.items():
        if info.name == name:
            return observable_type
    raise ValueError(f"Could not find observable type for name '{name}'")


def observable_size(observable_type: ObservableType) -> int:
    """Number of scalar entries in one observation of this type."""
    return _info(observable_type).size


def required_link_end_roles(observable_type: ObservableType) -> tuple[LinkEndType, ...]:
    """Roles an observation of this type requires, in link-end index order."""
    return _info(observable_type).link_end_roles


def link_end_index(observable_type: ObservableType, link_end_type: LinkEndType) -> int:
    """Index of a role in the link-end time/state lists of an observation.

    Raises:
        ValueError: If the role does not take part in this observable.
    """
    roles = required_link_end_roles(observable_type)
    if link_end_type not in roles:
        raise ValueError(
            f"Link end {link_end_type.value} is not used by observable "
            f"{observable_name(observable_type)}"
        )
    return roles.index(link_end_type)


def validate_link_ends(observable_type: ObservableType, link_ends: LinkEnds) -> None:
    """Check that link ends have exactly the roles the observable needs.

    Raises:
        ValueError: On a wrong number of link ends or a missing role.
    """
    name = observable_name(observable_type)
    roles = required_link_end_roles(observable_type)
    if len(link_ends) != len(roles):
        raise ValueError(
            f"Error when making {name} model, {len(link_ends)} link ends found, "
            f"expected {len(roles)}"
        )
    for role in roles:
        if role not in link_ends:
            raise ValueError(f"Error when making {name} model, no {role.value} found")
