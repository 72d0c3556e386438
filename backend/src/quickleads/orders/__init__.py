"""Lead export orders."""

from quickleads.orders.service import OrderService, order_service

__all__ = ["OrderService", "order_service"]
