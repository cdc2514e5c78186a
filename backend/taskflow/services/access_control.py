"""Task and project access control.

Two rules live here:
- Single-resource checks (view, edit, create, assign): owner, member, or
  anyone with a strictly higher access level than the owner.
- Scoped listing, applied only when enumerating collections: managers see
  their team's staff, directors their department's staff and managers, and
  HR sees everything.

Every function is a pure predicate over records; nothing here does I/O.
"""

from enum import IntEnum
from typing import Iterable, Mapping, Protocol, TypeVar


class AccessLevel(IntEnum):
    """Ordinal seniority (higher outranks lower)."""
    STAFF = 0
    MANAGER = 1
    DIRECTOR = 2
    HR = 3


class _Actor(Protocol):
    user_id: int
    access_level: int
    team_id: int | None
    department_id: int | None


class _Owned(Protocol):
    owner_id: int

    @property
    def member_ids(self) -> set[int]: ...


R = TypeVar("R", bound=_Owned)


# =============================================================================
# Single-resource predicates
# =============================================================================


def is_owner(actor: _Actor, resource: _Owned) -> bool:
    return actor.user_id == resource.owner_id


def is_member(actor: _Actor, resource: _Owned) -> bool:
    return actor.user_id in resource.member_ids


def outranks(actor: _Actor, owner: _Actor | None) -> bool:
    """True when actor's access level is strictly above owner's."""
    if owner is None:
        return False
    return actor.access_level > owner.access_level


def can_view(actor: _Actor, resource: _Owned, owner: _Actor | None) -> bool:
    return is_owner(actor, resource) or is_member(actor, resource) or outranks(actor, owner)


def can_edit_fields(
    actor: _Actor,
    resource: _Owned,
    owner: _Actor | None,
    fields: Iterable[str] = (),
) -> bool:
    """Same as can_view, except priority changes are reserved to the owner."""
    if "priority_bucket" in set(fields) and not is_owner(actor, resource):
        return False
    return can_view(actor, resource, owner)


def can_create_for(actor: _Actor, intended_owner: _Actor) -> bool:
    return actor.user_id == intended_owner.user_id or outranks(actor, intended_owner)


def can_assign(actor: _Actor, candidate_owner: _Actor) -> bool:
    return can_create_for(actor, candidate_owner)


def can_use_assignee_picker(actor: _Actor) -> bool:
    # Mirrors the UI; staff never get a picker
    return actor.access_level > AccessLevel.STAFF


def can_delete(actor: _Actor, task: _Owned) -> bool:
    return is_owner(actor, task)


def can_restore(actor: _Actor, task) -> bool:
    return is_owner(actor, task) or (
        task.deleted_by is not None and actor.user_id == task.deleted_by
    )


# =============================================================================
# Scoped listing
# =============================================================================


def can_list_owner(actor: _Actor, owner: _Actor | None) -> bool:
    """Whether resources owned by ``owner`` appear in actor's listings.

    Null team/department values never match each other.
    """
    if owner is None:
        return False
    if actor.user_id == owner.user_id:
        return True

    level = actor.access_level
    if level >= AccessLevel.HR:
        return True

    if level >= AccessLevel.DIRECTOR:
        if (
            owner.access_level < AccessLevel.DIRECTOR
            and actor.department_id is not None
            and actor.department_id == owner.department_id
        ):
            return True

    if level >= AccessLevel.MANAGER:
        if (
            owner.access_level == AccessLevel.STAFF
            and actor.team_id is not None
            and actor.team_id == owner.team_id
        ):
            return True

    return False


def filter_listable(
    actor: _Actor,
    resources: Iterable[R],
    owners_by_id: Mapping[int, _Actor],
) -> list[R]:
    """Keep only resources whose owner actor may list."""
    return [r for r in resources if can_list_owner(actor, owners_by_id.get(r.owner_id))]
