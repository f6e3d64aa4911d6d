"""Read-only catalog routes: the full snapshot and a branch's menu."""

import logging

from fastapi import APIRouter, HTTPException

from tableorder.api.deps import SnapshotDep
from tableorder.core.rbac import CurrentRole, STAFF_ROLES
from tableorder.core.responses import list_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/state")
def get_state(snapshot: SnapshotDep, role: CurrentRole):
    """Sanitized store snapshot. Orders are only included for staff."""
    exclude = {"admins"}
    if role not in STAFF_ROLES:
        exclude.add("orders")
    return snapshot.model_dump(by_alias=True, exclude=exclude, mode="json")


@router.get("/branches")
def list_branches(snapshot: SnapshotDep):
    return list_response([b.to_store() for b in snapshot.branches])


@router.get("/branches/{branch_id}/menu")
def get_branch_menu(branch_id: str, snapshot: SnapshotDep):
    """Categories, items sold at the branch and the topping catalog they use."""
    branch = snapshot.branch(branch_id)
    if branch is None:
        raise HTTPException(status_code=404, detail=f"Branch '{branch_id}' not found")

    items = [m for m in snapshot.menu_items if m.is_sold_at(branch_id)]
    group_ids = {gid for m in items for gid in m.topping_group_ids}
    groups = [g for g in snapshot.topping_groups if g.id in group_ids]
    topping_ids = {tid for g in groups for tid in g.topping_ids}

    return {
        "branch": branch.to_store(),
        "categories": [c.to_store() for c in snapshot.categories],
        "featured": [m.to_store() for m in items if m.is_featured and not m.is_out_of_stock],
        "items": [m.to_store() for m in items],
        "toppingGroups": [g.to_store() for g in groups],
        "toppings": [t.to_store() for t in snapshot.toppings if t.id in topping_ids],
    }
