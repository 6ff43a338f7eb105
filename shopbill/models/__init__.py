# shopbill/models/__init__.py
from .tenant import *          # Tenant, User
from .party import *           # Customer, Supplier
from .catalog import *         # Product, ProductSerial, ProductBatch
from .stock_movement import *  # StockMovement
from .invoice import *         # Invoice, InvoiceItem, Payment
from .purchase import *        # PurchaseBill, PurchaseBillItem, PurchasePayment
