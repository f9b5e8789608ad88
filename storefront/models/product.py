"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, Numeric, DateTime, JSON, Index
from sqlalchemy.sql import func
from storefront.database import Base


class Product(Base):
    """Product model."""

    __tablename__ = 'product'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String(100), nullable=False)
    brand = Column(String(100), nullable=False)
    model = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    # Display order matters for features and images (first image is the cover)
    features = Column(JSON, nullable=False, default=list)
    specifications = Column(JSON, nullable=False, default=dict)
    images = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_product_active_created', 'is_active', 'created_at'),
        Index('ix_product_type_brand', 'type', 'brand'),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', brand='{self.brand}')>"

    def to_dict(self) -> dict:
        """Serialize for JSON responses."""
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'brand': self.brand,
            'model': self.model,
            'category': self.category,
            'price': float(self.price) if self.price is not None else None,
            'stock': self.stock,
            'features': list(self.features or []),
            'specifications': dict(self.specifications or {}),
            'images': list(self.images or []),
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
