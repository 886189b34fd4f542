from fastapi import APIRouter

from quoteflow.api.routes import (
    approvals,
    audit_logs,
    auth,
    costs,
    customers,
    inquiries,
    items,
    notifications,
    quotes,
    search,
    users,
)

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(customers.router)
api_router.include_router(inquiries.router)
api_router.include_router(items.router)
api_router.include_router(costs.router)
api_router.include_router(approvals.router)
api_router.include_router(quotes.router)
api_router.include_router(notifications.router)
api_router.include_router(search.router)
api_router.include_router(audit_logs.router)
