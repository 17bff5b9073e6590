"""
Common Error Constants

Centralized error messages to avoid string duplication (SonarQube S1192).
"""

# Price errors
ERROR_PRICE_MISSING = "Price is missing"
ERROR_PRICE_NOT_FINITE = "Price is not a finite number"
ERROR_PRICE_BAD_FORMAT = "Invalid price format"
ERROR_UNSUPPORTED_CURRENCY = "Unsupported currency"
ERROR_UNSUPPORTED_LOCALE = "Unsupported locale"
ERROR_FRACTION_DIGITS = "Invalid fraction digits configuration"

# Cart errors
ERROR_INVALID_QUANTITY = "Quantity must be an integer between 1 and 99"
ERROR_CART_ITEM_NOT_FOUND = "Cart item not found"
ERROR_NOTHING_TO_UNDO = "Nothing to undo"
ERROR_UNKNOWN_ACTION = "Unknown cart action"

# Storage errors
ERROR_STORAGE_UNAVAILABLE = "Cart storage unavailable"
ERROR_STORAGE_CORRUPTED = "Saved cart is corrupted"
ERROR_STORAGE_VERSION = "Unsupported saved cart version"

# Health endpoint errors
ERROR_MISSING_REPORT_FIELDS = "Missing required fields: context, error"
ERROR_RESET_FORBIDDEN = "Reset only allowed in development"
ERROR_INVALID_ACTION = "Invalid action"
ERROR_INTERNAL = "Internal server error"
