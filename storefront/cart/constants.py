"""Cart constants."""
from decimal import Decimal

# Local persistence key for the device-scoped anonymous cart
LOCAL_CART_KEY = "cart"

# Prefix for line item ids generated before a row exists in Supabase
TEMP_ID_PREFIX = "temp-"

# Checkout pricing
TAX_RATE_PERCENT = Decimal("10")
FREE_SHIPPING_THRESHOLD = Decimal("50.00")  # strictly greater than
FLAT_SHIPPING = Decimal("9.99")
