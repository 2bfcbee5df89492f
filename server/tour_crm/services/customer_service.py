"""Customer service for business logic operations."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import ServiceContext
from ..core.exceptions import NotFoundError
from ..models.customer import Customer
from ..schemas.customer import CreateCustomerRequest

logger = logging.getLogger(__name__)


class CustomerService:
    """Service for customer-related operations."""

    def __init__(self, db: AsyncSession, ctx: ServiceContext):
        self.db = db
        self.organization_id = ctx.organization_id

    async def create_customer(self, request: CreateCustomerRequest) -> Customer:
        customer = Customer(organization_id=self.organization_id, **request.model_dump())
        self.db.add(customer)
        await self.db.commit()
        await self.db.refresh(customer)

        logger.info(
            "Customer created successfully",
            extra={
                "customer_id": str(customer.id),
                "organization_id": str(self.organization_id),
            }
        )
        return customer

    async def get_customer_by_id(self, customer_id: UUID) -> Optional[Customer]:
        stmt = select(Customer).where(
            Customer.id == customer_id,
            Customer.organization_id == self.organization_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_customer_by_id_or_raise(self, customer_id: UUID) -> Customer:
        """
        Get customer by ID or raise NotFoundError.

        Raises:
            NotFoundError: If the customer is missing or belongs to another organization
        """
        customer = await self.get_customer_by_id(customer_id)
        if not customer:
            logger.warning(
                "Customer not found",
                extra={"customer_id": str(customer_id)}
            )
            raise NotFoundError(resource_type="customer", resource_id=str(customer_id))
        return customer
