"""
Caller identity taken from headers set by the upstream auth provider.
"""
from typing import Optional

from fastapi import Header, HTTPException, status


class Identity:
    """Identity of the caller for the current request."""

    def __init__(self, user_id: Optional[str] = None, org_id: Optional[str] = None):
        self.user_id = user_id
        self.org_id = org_id

    def require_org(self) -> str:
        """Raise HTTPException if the caller is not attached to an organization."""
        if not self.org_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="orgId is required",
            )
        return self.org_id


def get_identity(
    x_user_id: Optional[str] = Header(None),
    x_org_id: Optional[str] = Header(None),
) -> Identity:
    """
    Dependency returning the caller identity.

    Header format: X-User-Id: <user id>, X-Org-Id: <organization id>
    """
    return Identity(
        user_id=(x_user_id or "").strip() or None,
        org_id=(x_org_id or "").strip() or None,
    )


def require_org(x_user_id: Optional[str] = Header(None), x_org_id: Optional[str] = Header(None)) -> Identity:
    """
    Dependency to enforce an organization scope.
    Raises HTTPException if the X-Org-Id header is missing.
    """
    identity = get_identity(x_user_id, x_org_id)
    identity.require_org()
    return identity
