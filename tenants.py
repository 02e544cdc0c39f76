"""Per-tenant branding. Tenants differ only by this record, never by code."""

import logging
from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field

from models import Company

logger = logging.getLogger(__name__)

TICKET_CANCELLATION = "ticket_cancellation"
MAP_BROWSER = "map_browser"
CART = "cart"


class TenantProfile(BaseModel):
    """Branding and capability set for one storefront"""
    model_config = ConfigDict(frozen=True)

    company: Company
    company_label: str
    color_theme: str = Field(..., description="Accent color, CSS hex")
    feature_flags: FrozenSet[str] = frozenset({MAP_BROWSER, CART, TICKET_CANCELLATION})

    def enabled(self, flag: str) -> bool:
        return flag in self.feature_flags


TENANTS = {
    Company.BOREAL: TenantProfile(company=Company.BOREAL, company_label="Boreal",
                                  color_theme="#1f6feb"),
    Company.GIRO: TenantProfile(company=Company.GIRO, company_label="Giro",
                                color_theme="#5ad733"),
    Company.RUMOS: TenantProfile(company=Company.RUMOS, company_label="Rumos",
                                 color_theme="#f28c28"),
}


def get_tenant(name) -> TenantProfile:
    """Profile for a tenant name; unknown names get the rumos profile."""
    company = Company(name)
    if company.value != str(name).strip().lower():
        logger.warning(f"Unknown tenant '{name}', using {company.value}")
    return TENANTS[company]
