from fastapi import APIRouter
from invoice_manager.api import auth, companies, invoices

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(companies.router, prefix="/companies", tags=["companies"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
