"""storefront: cart-to-order pricing and fulfillment engine."""

__version__ = "0.1.0"
