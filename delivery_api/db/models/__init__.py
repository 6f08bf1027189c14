"""
ORM models for tenants, identity, storefront, delivery, catalog, credits and billing.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .tenancy import Tenant  # noqa: F401
from .security import (  # noqa: F401
    User,
    Role,
    UserRole,
)
from .storefront import Store  # noqa: F401
from .delivery import (  # noqa: F401
    DeliveryZone,
    Order,
)
from .notifications import Notification  # noqa: F401
from .catalog import Product  # noqa: F401
from .credits import (  # noqa: F401
    TenantCredit,
    CreditTransaction,
    CreditGrant,
    CreditSubscription,
)
from .billing import SubscriptionEvent  # noqa: F401
