"""Read-only selectors returning frozen DTOs."""

from fulfillment_kernel.selectors.base import BaseSelector
from fulfillment_kernel.selectors.fulfillment_selector import FulfillmentSelector

__all__ = [
    "BaseSelector",
    "FulfillmentSelector",
]
