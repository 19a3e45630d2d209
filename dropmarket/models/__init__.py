from dropmarket.models.catalog import SupplierList, SupplierListStatus, Product, ProductVariant, VariantStatus
from dropmarket.models.pickup_point import PickupPoint, PickupPointStatus
from dropmarket.models.interest import UserInterest
from dropmarket.models.profile import Profile
from dropmarket.models.drop import Drop, DropStatus, DropStatusHistory, OPEN_DROP_STATUSES
from dropmarket.models.booking import Booking, PaymentStatus
from dropmarket.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory, PickupStatus
from dropmarket.models.notifications import Notification, NotificationType

__all__ = [
    # Catalog
    "SupplierList",
    "SupplierListStatus",
    "Product",
    "ProductVariant",
    "VariantStatus",
    # Pickup points
    "PickupPoint",
    "PickupPointStatus",
    # Interest & profiles
    "UserInterest",
    "Profile",
    # Drops
    "Drop",
    "DropStatus",
    "DropStatusHistory",
    "OPEN_DROP_STATUSES",
    # Bookings
    "Booking",
    "PaymentStatus",
    # Orders
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "PickupStatus",
    # Notifications
    "Notification",
    "NotificationType",
]
