"""orderflow: order lifecycle, coupons, loyalty and inventory for the food-delivery platform."""

__version__ = "1.0.0"
