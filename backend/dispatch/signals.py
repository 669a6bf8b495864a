"""
Dispatch outcomes published to the order-management side.

assignment_claimed: kwargs assignment, order_id, driver_id
dispatch_exhausted: kwargs order_id, assignment (may be None), reason
"""

from django.dispatch import Signal

assignment_claimed = Signal()
dispatch_exhausted = Signal()
