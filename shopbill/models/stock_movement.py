# shopbill/models/stock_movement.py
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric
from shopbill.db import Base


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    # sale | purchase
    movement_type = Column(String(16), nullable=False)
    # in | out
    direction = Column(String(8), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)

    # документ-основание: invoice | purchase_bill
    reference_type = Column(String(32), nullable=True)
    reference_id = Column(Integer, nullable=True)

    serial_id = Column(Integer, ForeignKey("product_serials.id", ondelete="SET NULL"), nullable=True)
    batch_id = Column(Integer, ForeignKey("product_batches.id", ondelete="SET NULL"), nullable=True)
    cost_price = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
