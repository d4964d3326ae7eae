"""Services package for backend application."""

from .order_service import (
    OrderScope,
    compute_total_amount,
    create_order,
    get_order_by_id,
    list_orders,
    update_order,
    update_order_status,
    teacher_respond,
    cancel_order,
    add_order_message,
)

__all__ = [
    'OrderScope',
    'compute_total_amount',
    'create_order',
    'get_order_by_id',
    'list_orders',
    'update_order',
    'update_order_status',
    'teacher_respond',
    'cancel_order',
    'add_order_message',
]
