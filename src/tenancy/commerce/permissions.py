"""Permission vocabulary of the commerce engine.

SuperAdmin is an ordinary permission held explicitly by the platform role;
nothing in the permission check treats it as a wildcard. Guards that grant
platform-wide access check for it by name and log every use.
"""

from __future__ import annotations

from enum import Enum


class Permission(str, Enum):
    SUPER_ADMIN = "SuperAdmin"

    # Platform-level
    MANAGE_TENANTS = "ManageTenants"
    CREATE_CHANNEL = "CreateChannel"
    DELETE_CHANNEL = "DeleteChannel"
    CREATE_SELLER = "CreateSeller"
    DELETE_SELLER = "DeleteSeller"
    CREATE_ADMINISTRATOR = "CreateAdministrator"
    READ_ADMINISTRATOR = "ReadAdministrator"

    # Business
    READ_CATALOG = "ReadCatalog"
    CREATE_CATALOG = "CreateCatalog"
    UPDATE_CATALOG = "UpdateCatalog"
    DELETE_CATALOG = "DeleteCatalog"
    READ_CUSTOMER = "ReadCustomer"
    CREATE_CUSTOMER = "CreateCustomer"
    UPDATE_CUSTOMER = "UpdateCustomer"
    DELETE_CUSTOMER = "DeleteCustomer"
    READ_ORDER = "ReadOrder"
    CREATE_ORDER = "CreateOrder"
    UPDATE_ORDER = "UpdateOrder"
    DELETE_ORDER = "DeleteOrder"
    READ_PROMOTION = "ReadPromotion"
    CREATE_PROMOTION = "CreatePromotion"
    UPDATE_PROMOTION = "UpdatePromotion"
    DELETE_PROMOTION = "DeletePromotion"
    READ_SHIPPING_METHOD = "ReadShippingMethod"
    CREATE_SHIPPING_METHOD = "CreateShippingMethod"
    UPDATE_SHIPPING_METHOD = "UpdateShippingMethod"
    DELETE_SHIPPING_METHOD = "DeleteShippingMethod"
    READ_PAYMENT_METHOD = "ReadPaymentMethod"
    CREATE_PAYMENT_METHOD = "CreatePaymentMethod"
    UPDATE_PAYMENT_METHOD = "UpdatePaymentMethod"
    DELETE_PAYMENT_METHOD = "DeletePaymentMethod"
    READ_ASSET = "ReadAsset"
    CREATE_ASSET = "CreateAsset"
    UPDATE_ASSET = "UpdateAsset"
    DELETE_ASSET = "DeleteAsset"
    READ_SETTINGS = "ReadSettings"
    UPDATE_SETTINGS = "UpdateSettings"
    READ_STOCK_LOCATION = "ReadStockLocation"
    CREATE_STOCK_LOCATION = "CreateStockLocation"
    UPDATE_STOCK_LOCATION = "UpdateStockLocation"
    DELETE_STOCK_LOCATION = "DeleteStockLocation"


# Never assignable to a tenant-scoped role
PLATFORM_PERMISSIONS: frozenset[Permission] = frozenset(
    {
        Permission.SUPER_ADMIN,
        Permission.MANAGE_TENANTS,
        Permission.CREATE_CHANNEL,
        Permission.DELETE_CHANNEL,
        Permission.CREATE_SELLER,
        Permission.DELETE_SELLER,
    }
)

# Fixed allow-list granted to every tenant administrator role
TENANT_ADMIN_PERMISSIONS: tuple[Permission, ...] = (
    Permission.READ_CATALOG,
    Permission.CREATE_CATALOG,
    Permission.UPDATE_CATALOG,
    Permission.DELETE_CATALOG,
    Permission.READ_CUSTOMER,
    Permission.CREATE_CUSTOMER,
    Permission.UPDATE_CUSTOMER,
    Permission.DELETE_CUSTOMER,
    Permission.READ_ORDER,
    Permission.CREATE_ORDER,
    Permission.UPDATE_ORDER,
    Permission.DELETE_ORDER,
    Permission.READ_PROMOTION,
    Permission.CREATE_PROMOTION,
    Permission.UPDATE_PROMOTION,
    Permission.DELETE_PROMOTION,
    Permission.READ_SHIPPING_METHOD,
    Permission.CREATE_SHIPPING_METHOD,
    Permission.UPDATE_SHIPPING_METHOD,
    Permission.DELETE_SHIPPING_METHOD,
    Permission.READ_PAYMENT_METHOD,
    Permission.CREATE_PAYMENT_METHOD,
    Permission.UPDATE_PAYMENT_METHOD,
    Permission.DELETE_PAYMENT_METHOD,
    Permission.READ_ASSET,
    Permission.CREATE_ASSET,
    Permission.UPDATE_ASSET,
    Permission.DELETE_ASSET,
    Permission.READ_SETTINGS,
    Permission.UPDATE_SETTINGS,
    Permission.READ_STOCK_LOCATION,
    Permission.CREATE_STOCK_LOCATION,
    Permission.UPDATE_STOCK_LOCATION,
    Permission.DELETE_STOCK_LOCATION,
)
