#import all models so SQLAlchemy registers them in Base.metadata

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.order_status_history import OrderStatusHistoryModel
from storefront.data.models.payment import PaymentTransactionModel, PaymentRefundModel

__all__ = [
    "OrderModel",
    "OrderItemModel",
    "OrderStatusHistoryModel",
    "PaymentTransactionModel",
    "PaymentRefundModel",
]
