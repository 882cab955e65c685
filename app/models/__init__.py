from app.models.tenant import Tenant
from app.models.product import Product
from app.models.order import Order
from app.models.inventory import InventoryItem
from app.models.coupon import Coupon
from app.models.customer import Customer
from app.models.finance import FinancialSnapshot, FixedCost, ManualTransaction
from app.models.admin_user import AdminUser
from app.models.admin_audit_log import AdminAuditLog
