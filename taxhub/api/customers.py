"""
Customer registry API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlmodel import Session, select
from typing import List
import structlog
import uuid

from taxhub.core.database import get_session, unit_of_work
from taxhub.core.dependencies import get_tenant_id
from taxhub.core.permissions import PermissionCode, require_permission
from taxhub.models import Customer
from taxhub.schemas.customer import CustomerCreate, CustomerRead

logger = structlog.get_logger(__name__)
router = APIRouter()


def _get_customer(session: Session, customer_id: uuid.UUID, tenant_id: uuid.UUID) -> Customer:
    customer = session.exec(
        select(Customer).where(
            Customer.id == customer_id,
            Customer.company_id == tenant_id
        )
    ).first()
    if not customer:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Customer not found"
        )
    return customer


@router.get("/", response_model=List[CustomerRead])
async def list_customers(
    skip: int = 0,
    limit: int = 100,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.CUSTOMER_READ)),
    session: Session = Depends(get_session)
):
    """List the company's customers"""
    return session.exec(
        select(Customer)
        .where(Customer.company_id == tenant_id)
        .order_by(Customer.created_at)
        .offset(skip)
        .limit(limit)
    ).all()


@router.post("/", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: CustomerCreate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.CUSTOMER_CREATE)),
    session: Session = Depends(get_session)
):
    """Register a customer for the caller's company"""
    customer = Customer(
        company_id=tenant_id,
        name=request.name,
        last_name=request.last_name,
        email=request.email.lower() if request.email else None,
        phone=request.phone,
    )
    with unit_of_work(session):
        session.add(customer)
    session.refresh(customer)
    logger.info("Customer created", customer_id=str(customer.id), company_id=str(tenant_id))
    return customer


@router.get("/{customer_id}", response_model=CustomerRead)
async def get_customer(
    customer_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.CUSTOMER_VIEW)),
    session: Session = Depends(get_session)
):
    """Get a customer by ID"""
    return _get_customer(session, customer_id, tenant_id)


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(
    customer_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.CUSTOMER_DELETE)),
    session: Session = Depends(get_session)
):
    """Remove a customer"""
    customer = _get_customer(session, customer_id, tenant_id)
    with unit_of_work(session):
        session.delete(customer)
    logger.info("Customer deleted", customer_id=str(customer_id), company_id=str(tenant_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
