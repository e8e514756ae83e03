"""Models package - exports all SQLAlchemy models."""
# Tenancy
from portal.models.company import Company, ApprovalStatus, CustomerType
from portal.models.app_user import AppUser
from portal.models.user_company import UserCompany, CompanyRole

# Catalog
from portal.models.product import Product
from portal.models.company_price import CompanyPrice

# Orders
from portal.models.order import (
    Order, OrderStatus, OrderStage, OrderChannel,
    STAGE_PIPELINE, STAGE_LABELS, parse_stage, parse_status
)
from portal.models.order_item import OrderItem
from portal.models.order_item_discount import (
    OrderItemDiscount, DiscountType, DiscountStatus,
    parse_discount_type, parse_discount_status
)

# Audit
from portal.models.audit_log import AuditLog, AuditAction

__all__ = [
    # Tenancy
    'Company', 'ApprovalStatus', 'CustomerType', 'AppUser', 'UserCompany', 'CompanyRole',
    # Catalog
    'Product', 'CompanyPrice',
    # Orders
    'Order', 'OrderStatus', 'OrderStage', 'OrderChannel', 'STAGE_PIPELINE', 'STAGE_LABELS',
    'parse_stage', 'parse_status',
    'OrderItem', 'OrderItemDiscount', 'DiscountType', 'DiscountStatus',
    'parse_discount_type', 'parse_discount_status',
    # Audit
    'AuditLog', 'AuditAction',
]
