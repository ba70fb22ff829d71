"""
Master/detail editing with change tracking.

An order screen edits one order and its detail lines; a user list is sorted
by age. Run with ``python examples/orders.py`` after installing the package.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from changetracking import (
    ChangeStatus,
    SortDirection,
    accept_changes,
    as_trackable,
    as_trackable_collection,
    get_changed_properties,
    get_original_value,
    get_status,
    reject_changes,
)

logger = logging.getLogger(__name__)


@dataclass
class OrderDetail:
    product: str = ""
    quantity: int = 1


@dataclass
class Order:
    customer: str = ""
    details: List[OrderDetail] = field(default_factory=list)


@dataclass
class User:
    name: str = ""
    age: Optional[int] = None


def edit_order() -> None:
    order = as_trackable(Order("ACME", [OrderDetail("Widget", 2), OrderDetail("Gadget", 1)]))

    order.customer = "Initech"
    order.details[0].quantity = 5
    order.details.append(OrderDetail("Gizmo"))
    del order.details[1]

    logger.info(f"Order status: {get_status(order).name}, changed: {sorted(get_changed_properties(order))}")
    logger.info(f"Customer was {get_original_value(order, 'customer')!r}")
    logger.info(f"Added lines: {[d.product for d in order.details.added_items()]}")
    logger.info(f"Deleted lines: {[d.product for d in order.details.deleted_items()]}")

    reject_changes(order)
    assert get_status(order) is ChangeStatus.UNCHANGED
    logger.info(f"After reject: {order.customer}, {[d.product for d in order.details]}")


def sort_users() -> None:
    def report(collection, event):
        logger.info(f"Collection changed: {event.kind.name}")

    users = as_trackable_collection([User("Carol", 30), User("Alice"), User("Bob", 20)])
    users.on_collection_changed(report)

    users.sort("age", SortDirection.DESCENDING)
    logger.info(f"By age, oldest first: {[u.name for u in users]}")

    new_user = users.add_new()
    new_user.name = "Dave"
    new_user.age = 41
    accept_changes(new_user)
    logger.info(f"After adding Dave: {[u.name for u in users]}")


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(name)s: %(message)s')
    edit_order()
    sort_users()
