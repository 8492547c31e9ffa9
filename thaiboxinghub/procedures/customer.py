from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..model.db import Customer

PLACEHOLDER_CUSTOMER_ID = "dev_customer_placeholder"


async def find_by_email(db: AsyncSession, email: str) -> Optional[Customer]:
    return await db.scalar(
        select(Customer)
        .where(Customer.email == email.strip())
        .order_by(Customer.created_at)
        .limit(1)
    )


async def find_or_create(db: AsyncSession, name: str, email: str,
                         phone: Optional[str] = None,
                         refresh: bool = False) -> Customer:
    """Guest customer keyed by e-mail. Flushes, the caller commits.

    With refresh=True an existing row takes the new name and phone.
    """
    customer = await find_by_email(db, email)
    if customer is None:
        customer = Customer(name=name.strip(), email=email.strip(), phone=phone)
        db.add(customer)
        await db.flush()
    elif refresh:
        customer.name = name.strip() or customer.name
        if phone:
            customer.phone = phone
    return customer


async def placeholder(db: AsyncSession) -> Customer:
    customer = await db.get(Customer, PLACEHOLDER_CUSTOMER_ID)
    if customer is None:
        customer = Customer(
            id=PLACEHOLDER_CUSTOMER_ID,
            name="Dev User",
            email="dev@example.com",
        )
        db.add(customer)
        await db.flush()
    return customer
