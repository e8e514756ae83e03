"""
Per-request acting context.

Built once per request by the middleware and passed explicitly into every
service call, so services never read identity or scope from globals.
"""
from dataclasses import dataclass
from typing import Optional

from portal.exceptions import ScopeViolationError


@dataclass(frozen=True)
class RequestContext:
    """Who is acting, and for which company.

    actor_user_id is always the authenticated user. While a superadmin
    impersonates, effective_company_id is the impersonated company and
    impersonating is True; the actor does not change.
    """
    actor_user_id: int
    is_superadmin: bool = False
    effective_company_id: Optional[int] = None
    impersonating: bool = False
    role: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def require_company(self) -> int:
        """Return the effective company id or raise ScopeViolationError."""
        if self.effective_company_id is None:
            raise ScopeViolationError()
        return self.effective_company_id

    @property
    def is_company_admin(self) -> bool:
        """Company admins and impersonating superadmins manage the company."""
        from portal.models import CompanyRole

        if self.is_superadmin and self.impersonating:
            return True
        return self.role == CompanyRole.COMPANY_ADMIN.value
