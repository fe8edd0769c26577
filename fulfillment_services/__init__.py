"""
fulfillment_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the fulfillment kernel: the config-driven
    permission checker, the shipment lookup the dispatch gate reads, and
    the unit-of-work facade (``FulfillmentEngine``) that is the canonical
    entry point for a request-handling layer.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        fulfillment_services/ -> fulfillment_kernel/   (allowed)
        fulfillment_services/ -> fulfillment_config/   (allowed)
        fulfillment_kernel/   -> fulfillment_services/ (FORBIDDEN)
        fulfillment_engines/  -> fulfillment_services/ (FORBIDDEN)
"""

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("services")

from fulfillment_services.engine import FulfillmentEngine, KernelServices  # noqa: E402
from fulfillment_services.rbac_authority import RoleBasedAuthority  # noqa: E402
from fulfillment_services.shipment_directory import StaticShipmentDirectory  # noqa: E402

__all__ = [
    "FulfillmentEngine",
    "KernelServices",
    "RoleBasedAuthority",
    "StaticShipmentDirectory",
]
