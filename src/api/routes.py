from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from src.api.providers.endpoints.provider import router as provider_router
from src.api.clients.endpoints.client import router as client_router
from src.api.contracts.endpoints.contract import router as contract_router
from src.api.attendance.endpoints.attendance import router as attendance_router
from src.api.invoices.endpoints.invoice import router as invoice_router
from src.api.billing.endpoints.billing import router as billing_router
from src.api.notifications.endpoints.notification import router as notification_router

api_router = APIRouter()

# Include all domain routers
api_router.include_router(provider_router)
api_router.include_router(client_router)
api_router.include_router(contract_router)
api_router.include_router(attendance_router)
api_router.include_router(invoice_router)
api_router.include_router(billing_router)
api_router.include_router(notification_router)


@api_router.route('/hello', methods=['POST', 'GET'])
def handle_hello(request: Request):
    response_body = {
        "message": "Hello! I'm a message that came from the billing backend"
    }
    return JSONResponse(content=response_body)
