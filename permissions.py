"""
Authorization gate: decides whether a verified identity may perform an action.

Every check raises AccessDenied instead of returning the resource, so the
rejection body never includes anything about what was protected.
"""
from dataclasses import dataclass
from typing import Optional

from errors import AccessDenied


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def can_access_owned(identity: Identity, owner_email: Optional[str]) -> bool:
    if identity.is_admin:
        return True
    return owner_email is not None and identity.email.lower() == owner_email.lower()


def require_owner_or_admin(identity: Identity, owner_email: Optional[str]) -> None:
    if not can_access_owned(identity, owner_email):
        raise AccessDenied("Access denied. You can only access your own resources.")


def require_seller(identity: Identity) -> None:
    if identity.role not in ("seller", "admin"):
        raise AccessDenied("Access denied. Seller privileges required.")


def require_admin(identity: Identity) -> None:
    if not identity.is_admin:
        raise AccessDenied("Access denied. Admin privileges required.")


def require_order_manager(identity: Identity, order: dict) -> None:
    # Only the seller named on the order, or an admin, moves an order along.
    if not can_access_owned(identity, order.get("seller_id")):
        raise AccessDenied("Access denied. Only the seller or an admin can update this order.")
