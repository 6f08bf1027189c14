"""
Credit prices for billable actions, purchasable credit packages, and tier constants.

Operator screens and exports are free, while customer menu views drain a few
credits. Actions that create work or send messages cost credits for free-tier
tenants. Keys not listed cost nothing.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

FREE_TIER_MONTHLY_CREDITS = 500
LOW_BALANCE_WARNING_LEVELS: Tuple[int, ...] = (2000, 1000, 500, 100)
HIGH_COST_THRESHOLD = 75


@dataclass(frozen=True)
class CreditCost:
    action_key: str
    action_name: str
    credits: int
    category: str
    description: str


@dataclass(frozen=True)
class CreditPackage:
    slug: str
    name: str
    credits: int
    price_cents: int
    description: str


def _cost(action_key: str, action_name: str, credits: int, category: str, description: str) -> CreditCost:
    return CreditCost(action_key, action_name, credits, category, description)


_COSTS: List[CreditCost] = [
    # command center
    _cost("dashboard_view", "View Dashboard", 0, "command_center", "View dashboard (always free)"),
    _cost("live_orders_view", "View Live Orders", 0, "command_center", "View live orders (always free)"),
    _cost("live_map_view", "View Live Map", 0, "command_center", "View courier map (always free)"),
    # orders
    _cost("orders_view", "View Orders", 0, "orders", "View orders (always free)"),
    _cost("order_create_manual", "Create Manual Order", 50, "orders", "Create an order by hand"),
    _cost("order_update_status", "Update Order Status", 0, "orders", "Move an order along its lifecycle"),
    _cost("order_cancel", "Cancel Order", 0, "orders", "Cancel an order"),
    _cost("menu_order_received", "Order Received", 75, "orders", "Customer order from menu (core revenue)"),
    # menus
    _cost("menu_view", "Menu View", 2, "menus", "Customer viewed menu (passive drain)"),
    _cost("menu_create", "Create Menu", 100, "menus", "Create disposable menu (core feature)"),
    _cost("menu_edit", "Edit Menu", 0, "menus", "Edit existing menu (maintenance)"),
    _cost("menu_share_link", "Share Menu Link", 0, "menus", "Share menu link (encourages usage)"),
    _cost("menu_import_catalog", "Import Catalog", 50, "menus", "Import catalog to menu (one-time setup)"),
    # wholesale
    _cost("wholesale_view", "View Wholesale", 0, "wholesale", "View wholesale (always free)"),
    _cost("wholesale_order_place", "Place Wholesale Order", 100, "wholesale", "Place a wholesale order"),
    _cost("wholesale_order_receive", "Receive Wholesale Order", 75, "wholesale", "Receive a wholesale order"),
    # inventory
    _cost("product_view", "View Products", 0, "inventory", "View products (always free)"),
    _cost("product_add", "Add Product", 10, "inventory", "Add a product"),
    _cost("product_edit", "Edit Product", 0, "inventory", "Edit a product"),
    _cost("product_bulk_import", "Bulk Import Products", 50, "inventory", "Import products from a file"),
    _cost("stock_update", "Update Stock", 3, "inventory", "Update stock level"),
    # delivery
    _cost("delivery_view", "View Deliveries", 0, "delivery", "View deliveries (always free)"),
    _cost("delivery_create", "Create Delivery", 30, "delivery", "Create delivery"),
    _cost("delivery_mark_complete", "Mark Delivered", 0, "delivery", "Mark delivery complete (free)"),
    _cost("delivery_zone_create", "Create Delivery Zone", 0, "delivery", "Draw a delivery zone (setup)"),
    _cost("route_optimization", "Optimize Route", 1, "delivery", "Optimize a delivery route"),
    _cost("courier_assign_delivery", "Assign Delivery", 10, "fleet", "Assign delivery to courier"),
    # communication
    _cost("send_sms", "Send SMS", 25, "crm", "Send SMS notification"),
    # invoices and reports
    _cost("invoice_create", "Create Invoice", 50, "invoices", "Create invoice (document generation)"),
    _cost("invoice_send", "Send Invoice", 25, "invoices", "Send invoice (communication)"),
    _cost("report_standard_view", "View Standard Reports", 0, "reports", "View standard reports (always free)"),
    _cost("report_custom_generate", "Generate Custom Report", 75, "reports", "Generate custom report (premium)"),
    _cost("storefront_create", "Create Storefront", 500, "marketplace", "Create a new white-label storefront"),
    # exports
    _cost("export_csv", "Export to CSV", 0, "exports", "Export to CSV (always free)"),
    _cost("report_export", "Export Report", 0, "exports", "Export report (always free)"),
]

CREDIT_COSTS: Dict[str, CreditCost] = {c.action_key: c for c in _COSTS}

CREDIT_PACKAGES: List[CreditPackage] = [
    CreditPackage("quick-boost", "Quick Boost", 500, 1999, "Quick top-up for immediate needs"),
    CreditPackage("starter-pack", "Starter Pack", 1500, 4999, "Most popular for growing businesses"),
    CreditPackage("growth-pack", "Growth Pack", 5000, 12999, "Best value for heavy users"),
    CreditPackage("power-pack", "Power Pack", 15000, 29999, "For high-volume operations"),
]


# PUBLIC_INTERFACE
def get_credit_cost(action_key: str) -> int:
    """Credits charged for an action; unknown actions are free."""
    cost = CREDIT_COSTS.get(action_key)
    return cost.credits if cost else 0


def get_package(slug: str) -> Optional[CreditPackage]:
    return next((p for p in CREDIT_PACKAGES if p.slug == slug), None)


def is_high_cost(action_key: str) -> bool:
    """Actions at or above this cost get a confirmation prompt in the UI."""
    return get_credit_cost(action_key) >= HIGH_COST_THRESHOLD


# PUBLIC_INTERFACE
def crossed_warning_level(
    previous_balance: int, new_balance: int, already_sent: Iterable[int] = ()
) -> Optional[int]:
    """
    Lowest low-balance level crossed when the balance dropped, or None.

    With levels (2000, 1000, 500, 100), going from 600 to 80 crosses 500 and 100
    and reports 100, the most urgent one. Levels in already_sent are skipped.
    """
    sent = set(already_sent)
    crossed = [
        lvl
        for lvl in LOW_BALANCE_WARNING_LEVELS
        if new_balance < lvl <= previous_balance and lvl not in sent
    ]
    return min(crossed) if crossed else None
