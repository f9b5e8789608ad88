"""Models package - exports all SQLAlchemy models."""
from storefront.models.product import Product

__all__ = ['Product']
