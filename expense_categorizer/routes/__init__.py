"""API routes."""

from fastapi import APIRouter

from expense_categorizer.routes import categorize, merchants, patterns

api_router = APIRouter()

# Pattern management
api_router.include_router(patterns.router, prefix="/v1/patterns", tags=["patterns"])

# Transaction categorization + feedback
api_router.include_router(categorize.router, prefix="/v1/categorize", tags=["categorize"])

# Merchant alias resolution
api_router.include_router(merchants.router, prefix="/v1/merchants", tags=["merchants"])
