"""Customer router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OrganizationScope, ServiceContext
from ..schemas.customer import CreateCustomerRequest, Customer, GetCustomerRequest
from ..services.customer_service import CustomerService
from .common import PROBLEM_RESPONSES, execute_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/customer", tags=["customer"], responses=PROBLEM_RESPONSES)


@router.post("/create", response_model=Customer)
async def create_customer(
    request: CreateCustomerRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = CustomerService(db, ctx)

    async def operation():
        return Customer.model_validate(await service.create_customer(request))

    return await execute_operation("customer creation", operation)


@router.post("/get", response_model=Customer)
async def get_customer(
    request: GetCustomerRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = CustomerService(db, ctx)

    async def operation():
        return Customer.model_validate(await service.get_customer_by_id_or_raise(request.customer_id))

    return await execute_operation("customer retrieval", operation, customer_id=str(request.customer_id))
