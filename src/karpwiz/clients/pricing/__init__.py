from .pricing_client import BUILTIN_PRICING_PATH, PricingClient

__all__ = ["BUILTIN_PRICING_PATH", "PricingClient"]
