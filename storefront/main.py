from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from storefront.config import get_settings
from storefront.database import engine, Base
from storefront.api import admin_orders, admin_products, customers, health, orders, products

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting up application...")

    # Create database tables
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    yield

    # Shutdown
    logger.info("Shutting down application...")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Storefront and back-office API for a home-goods retailer:

    - **Checkout**: Inventory-safe order creation with customer reconciliation
    - **Order Management**: Admin order list and status workflow
    - **Product Management**: Admin CRUD and storefront product detail
    - **Bulk Import**: Create or update products from an .xlsx spreadsheet

    ## Features

    ### Stock Management & Race Condition Handling
    Checkout locks the cart's products with `SELECT FOR UPDATE` and a database
    check constraint keeps stock from going negative. When several shoppers
    buy the last item simultaneously, only one succeeds.

    ### Order Status Workflow
    PENDING → PAID → SHIPPED → COMPLETED, with cancellation allowed until
    completion. Cancelling an order returns its items to stock.

    ### Caching
    Product details are cached in Redis with a 5-minute TTL and invalidated
    whenever stock or product data changes.
    """,
    version=settings.VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(orders.router, prefix="/api/v1")
app.include_router(customers.router, prefix="/api/v1")
app.include_router(admin_products.router, prefix="/api/v1")
app.include_router(admin_orders.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/api/v1/health"
    }
