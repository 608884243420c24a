"""
Franchise Ledger - HTTP API

FastAPI surface over the Ledger facade. Every route lives under /api/v1.

Errors follow one body shape:
{
  "detail": {
    "error": "ERROR_CODE",
    "message": "Human readable...",
    "details": {...}
  }
}

Author: Franchise Ledger Team
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .logic.config_manager import LedgerConfig, get_config
from .logic.exceptions import (
    AmbiguousRow,
    ConfigurationError,
    LedgerError,
    RowNotFound,
    SettlementUnverifiable,
    SheetUnavailable,
    TransportError,
)
from .models.records import (
    SKU,
    Brand,
    CompanyEarnings,
    Franchise,
    LocationMetrics,
    NewAllocation,
    NewOrder,
    Order,
    OrderLine,
    OrderSupplierAllocation,
    PaymentTrackerRow,
    ReconSummary,
    Supplier,
    SupplierInvoice,
    SupplierInvoiceBatch,
)
from .services.ledger import Ledger

logger = logging.getLogger(__name__)

API_VERSION = "v1"
API_TITLE = "Franchise Ledger API"
APP_VERSION = "1.0.0"

# ==============================================================================
# STANDARDIZED API ERROR RESPONSES
# ==============================================================================


def api_error(status_code: int, error_code: str, message: str, details: Dict = None) -> HTTPException:
    """
    Create a standardized API error response.

    Usage:
        raise api_error(404, "ORDER_NOT_FOUND", "Order #1005 not found")
        raise api_error(400, "VALIDATION_ERROR", "Invalid date", {"field": "paid_date"})
    """
    detail = {"error": error_code, "message": message}
    if details:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


# Most specific first; the first isinstance match decides the status
ERROR_STATUS = [
    (RowNotFound, 404),
    (AmbiguousRow, 409),
    (ConfigurationError, 500),
    (SettlementUnverifiable, 503),
    (SheetUnavailable, 503),
    (TransportError, 503),
    (LedgerError, 500),
]


def status_for(exc: LedgerError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error_response(error: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


# ==============================================================================
# CORS CONFIGURATION
# ==============================================================================
# Configure allowed origins via CORS_ALLOWED_ORIGINS (comma-separated) or
# cors_allowed_origins in config.json. Leave unset for localhost defaults.

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]


def get_cors_origins(config: Optional[LedgerConfig] = None) -> List[str]:
    """Get CORS allowed origins from config/environment or use development defaults."""
    if config is not None and config.cors_allowed_origins:
        return list(config.cors_allowed_origins)
    env_origins = os.environ.get("CORS_ALLOWED_ORIGINS", "")
    if env_origins:
        return [origin.strip() for origin in env_origins.split(",") if origin.strip()]
    return list(DEV_ORIGINS)


# ==============================================================================
# LEDGER DEPENDENCY
# ==============================================================================

def get_ledger(request: Request) -> Ledger:
    """The app's Ledger, connected to Google Sheets on first use."""
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        ledger = Ledger.from_config(request.app.state.config)
        request.app.state.ledger = ledger
    return ledger


# ==============================================================================
# ROUTES
# ==============================================================================

api_v1 = APIRouter(prefix=f"/api/{API_VERSION}", tags=[API_VERSION])


@api_v1.get("/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


# ---- Orders -----------------------------------------------------------------

@api_v1.get("/orders", response_model=List[Order])
def list_orders(ledger: Ledger = Depends(get_ledger)):
    return ledger.list_orders()


@api_v1.get("/orders/by-invoice/{invoice_no}", response_model=Order)
def get_order_by_invoice(invoice_no: str, ledger: Ledger = Depends(get_ledger)):
    order = ledger.get_order_by_invoice_no(invoice_no)
    if order is None:
        raise api_error(404, "ORDER_NOT_FOUND", f"No order with invoice {invoice_no}")
    return order


@api_v1.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: str, brand: Optional[str] = None, ledger: Ledger = Depends(get_ledger)):
    order = ledger.get_order_by_id(order_id, brand=brand)
    if order is None:
        raise api_error(404, "ORDER_NOT_FOUND", f"Order {order_id} not found", {"brand": brand} if brand else None)
    return order


@api_v1.get("/orders/{order_id}/lines", response_model=List[OrderLine])
def get_order_lines(
    order_id: str,
    invoice_no: Optional[str] = None,
    brand: Optional[str] = None,
    ledger: Ledger = Depends(get_ledger),
):
    return ledger.list_order_lines(order_id, invoice_no=invoice_no, brand=brand)


@api_v1.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    fields: Dict[str, Any] = Body(...),
    brand: Optional[str] = None,
    invoice_no: Optional[str] = None,
    ledger: Ledger = Depends(get_ledger),
):
    """
    Update status fields of an order.

    Fields outside the allow-list are ignored; the response lists the
    fields actually written.
    """
    if not fields:
        raise api_error(400, "INVALID_UPDATE_FIELDS", "No fields to update")
    written = ledger.update_order_status(order_id, fields, brand=brand, invoice_no=invoice_no)
    return {"order_id": order_id, "updated": written}


@api_v1.post("/orders", status_code=201)
def create_order(order: NewOrder, ledger: Ledger = Depends(get_ledger)):
    return ledger.create_order(order)


@api_v1.delete("/orders/{order_id}")
def delete_order(
    order_id: str,
    brand: Optional[str] = None,
    invoice_no: Optional[str] = None,
    ledger: Ledger = Depends(get_ledger),
):
    return ledger.delete_order(order_id, brand=brand, invoice_no=invoice_no)


# ---- Payments ---------------------------------------------------------------

@api_v1.get("/payments", response_model=List[PaymentTrackerRow])
def list_payments(
    settlement_status: Optional[str] = None,
    exclude_settled: bool = False,
    brand: Optional[str] = None,
    franchisee: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    ledger: Ledger = Depends(get_ledger),
):
    return ledger.list_payment_tracker_rows(
        settlement_status=settlement_status,
        exclude_settled=exclude_settled,
        brand=brand,
        franchisee=franchisee,
        start_date=start_date,
        end_date=end_date,
    )


@api_v1.patch("/payments/partner-payment")
def update_partner_payment(
    sales_invoice_no: str = Body(..., embed=True),
    fields: Dict[str, Any] = Body(..., embed=True),
    ledger: Ledger = Depends(get_ledger),
):
    written = ledger.update_partner_payment(sales_invoice_no, fields)
    return {"sales_invoice_no": sales_invoice_no, "updated": written}


@api_v1.get("/payments/recon-summary", response_model=ReconSummary)
def recon_summary(sales_invoice_no: str = Query(..., min_length=1), ledger: Ledger = Depends(get_ledger)):
    return ledger.get_recon_summary(sales_invoice_no)


@api_v1.get("/payments/settlement-status")
def settlement_status(sales_invoice_no: str = Query(..., min_length=1), ledger: Ledger = Depends(get_ledger)):
    status = ledger.get_settlement_status(sales_invoice_no)
    if status is None:
        raise api_error(404, "ORDER_NOT_FOUND", f"No order with invoice {sales_invoice_no}")
    return {"sales_invoice_no": sales_invoice_no, "settlement_status": status.value}


@api_v1.get("/supplier-invoices", response_model=List[SupplierInvoice])
def list_supplier_invoices(sales_invoice_no: Optional[str] = None, ledger: Ledger = Depends(get_ledger)):
    return ledger.list_supplier_invoices(sales_invoice_no)


@api_v1.post("/supplier-invoices", status_code=201)
def create_supplier_invoices(batch: SupplierInvoiceBatch, ledger: Ledger = Depends(get_ledger)):
    return ledger.create_supplier_invoices(batch)


@api_v1.post("/supplier-invoices/mark-paid")
def mark_supplier_invoice_paid(
    supplier_invoice_no: str = Body(..., embed=True),
    paid_date: str = Body("", embed=True),
    payment_reference: str = Body("", embed=True),
    ledger: Ledger = Depends(get_ledger),
):
    written = ledger.mark_supplier_invoice_paid(supplier_invoice_no, paid_date, payment_reference)
    return {"supplier_invoice_no": supplier_invoice_no, "updated": written}


@api_v1.patch("/supplier-invoices/{invoice_id}")
def update_supplier_invoice(
    invoice_id: str,
    fields: Dict[str, Any] = Body(...),
    ledger: Ledger = Depends(get_ledger),
):
    written = ledger.update_supplier_invoice(invoice_id, fields)
    return {"id": invoice_id, "updated": written}


@api_v1.get("/allocations", response_model=List[OrderSupplierAllocation])
def list_allocations(sales_invoice_no: Optional[str] = None, ledger: Ledger = Depends(get_ledger)):
    return ledger.list_allocations(sales_invoice_no)


@api_v1.post("/allocations", status_code=201)
def create_allocation(allocation: NewAllocation, ledger: Ledger = Depends(get_ledger)):
    return {"row": ledger.create_allocation(allocation)}


# ---- Catalog ----------------------------------------------------------------

@api_v1.get("/suppliers", response_model=List[Supplier])
def list_suppliers(brand: Optional[str] = None, ledger: Ledger = Depends(get_ledger)):
    return ledger.list_suppliers(brand)


@api_v1.get("/skus", response_model=List[SKU])
def list_skus(brand: Optional[str] = None, ledger: Ledger = Depends(get_ledger)):
    return ledger.list_skus(brand)


@api_v1.get("/franchises", response_model=List[Franchise])
def list_franchises(ledger: Ledger = Depends(get_ledger)):
    return ledger.list_franchises()


@api_v1.get("/brands", response_model=List[Brand])
def list_brands(ledger: Ledger = Depends(get_ledger)):
    return ledger.list_brands()


@api_v1.get("/locations/{code}/metrics", response_model=LocationMetrics)
def location_metrics(code: str, ledger: Ledger = Depends(get_ledger)):
    metrics = ledger.get_location_metrics(code)
    if metrics is None:
        raise api_error(404, "LOCATION_NOT_FOUND", f"No franchise with code {code}")
    return metrics


@api_v1.get("/company-earnings", response_model=List[CompanyEarnings])
def list_company_earnings(ledger: Ledger = Depends(get_ledger)):
    return ledger.list_company_earnings()


# ==============================================================================
# APPLICATION
# ==============================================================================

def create_app(ledger: Optional[Ledger] = None, config: Optional[LedgerConfig] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        ledger: Ledger to serve; built from config on the first request
            when omitted
        config: Settings; defaults to the loaded configuration
    """
    config = config or (ledger.config if ledger is not None else get_config())

    app = FastAPI(
        title=API_TITLE,
        description="Franchise orders, supplier costs and payment reconciliation",
        version=APP_VERSION,
    )
    app.state.ledger = ledger
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(config),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.error_code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path}: {exc.error_code}: {exc.message}")
        return _error_response(api_error(status_code, exc.error_code, exc.message, exc.details))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error_response(api_error(400, "VALIDATION_ERROR", str(exc)))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(api_error(400, "VALIDATION_ERROR", "Invalid request", {"errors": errors}))

    app.include_router(api_v1)
    return app
