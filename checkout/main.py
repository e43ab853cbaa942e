# checkout/main.py
import uvicorn

from checkout.api import create_app
from checkout.data.database import Base, engine
from checkout.utils.logging import get_logger

# IMPORT WSZYSTKICH MODELI NA POCZĄTKU (PRZED JAKIMKOLWIEK CREATE_ALL)
from checkout.data.models import (  # noqa: F401
    CartModel,
    CartLineModel,
    OrderItemModel,
    OrderModel,
    OrderStatusUpdateModel,
    PaymentAuthorizationModel,
)

logger = get_logger(__name__)

print("=" * 80)
print("🔧 INITIALIZING DATABASE...")
print(f"📦 Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
print("=" * 80)

try:
    Base.metadata.create_all(bind=engine)
    print("✅ DATABASE TABLES CREATED SUCCESSFULLY")
    print("=" * 80)
except Exception as e:
    print(f"❌ FAILED TO CREATE TABLES: {e}")
    print("=" * 80)
    raise


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
