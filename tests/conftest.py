import os
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENABLE_CRON", "false")
os.environ.setdefault("AUTOMATION_SEED_TEMPLATES", "false")

import gscms.models  # noqa: F401
from gscms.core.config import settings
from gscms.core.deps import get_db
from gscms.core.security import create_access_token
from gscms.db.base import Base
from gscms.main import app
from gscms.models.automation import AutomationRule
from gscms.models.costing import Approval, CostCalculation
from gscms.models.customer import Customer
from gscms.models.email_template import EmailTemplate
from gscms.models.inquiry import Inquiry, InquiryItem
from gscms.models.quote import ProductionOrder, Quote
from gscms.models.user import User


def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def test_context():
    original_secret = settings.secret_key
    settings.secret_key = "test-secret-key"

    engine = _memory_engine()
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    test_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, test_session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    settings.secret_key = original_secret


@pytest.fixture()
def session_factory():
    engine = _memory_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


class Seed:
    """Committed rows for tests. Every helper takes the session it writes to."""

    @staticmethod
    def user(db: Session, *, role: str = "ADMIN", name: str | None = None, is_active: bool = True) -> User:
        user = User(
            email=f"{role.lower()}-{uuid4().hex[:10]}@example.com",
            name=name or f"{role.title()} User",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def customer(db: Session, *, name: str = "Acme Fabrication") -> Customer:
        customer = Customer(name=name, email="buyer@acme.example.com")
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def inquiry(db: Session, *, customer: Customer, created_by: User, **fields) -> Inquiry:
        values = {"title": "Steel brackets", "status": "SUBMITTED", "priority": "MEDIUM"}
        values.update(fields)
        inquiry = Inquiry(customer_id=customer.id, created_by_id=created_by.id, **values)
        db.add(inquiry)
        db.commit()
        db.refresh(inquiry)
        return inquiry

    @staticmethod
    def item(db: Session, *, inquiry: Inquiry, **fields) -> InquiryItem:
        values = {"name": "Bracket A-12", "quantity": 10, "status": "PENDING"}
        values.update(fields)
        item = InquiryItem(inquiry_id=inquiry.id, **values)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    @staticmethod
    def cost(db: Session, *, item: InquiryItem, calculated_by: User, total: str = "1250.50", is_approved: bool = False) -> CostCalculation:
        calculation = CostCalculation(
            inquiry_item_id=item.id,
            calculated_by_id=calculated_by.id,
            total_cost=Decimal(total),
            is_approved=is_approved,
        )
        db.add(calculation)
        db.commit()
        db.refresh(calculation)
        return calculation

    @staticmethod
    def approval(db: Session, *, calculation: CostCalculation, approver: User) -> Approval:
        approval = Approval(cost_calculation_id=calculation.id, approver_id=approver.id)
        db.add(approval)
        db.commit()
        db.refresh(approval)
        return approval

    @staticmethod
    def quote(db: Session, *, inquiry: Inquiry, created_by: User, total: str = "5000.00") -> Quote:
        quote = Quote(
            inquiry_id=inquiry.id,
            quote_number=f"Q-{uuid4().hex[:8].upper()}",
            title="Bracket supply quote",
            total=Decimal(total),
            created_by_id=created_by.id,
        )
        db.add(quote)
        db.commit()
        db.refresh(quote)
        return quote

    @staticmethod
    def production_order(db: Session, *, quote: Quote, total: str = "5000.00") -> ProductionOrder:
        order = ProductionOrder(
            quote_id=quote.id,
            order_number=f"PO-{uuid4().hex[:8].upper()}",
            title="Bracket production run",
            total_value=Decimal(total),
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    @staticmethod
    def rule(
        db: Session,
        *,
        trigger: str,
        actions: list[dict],
        conditions: list[dict] | None = None,
        priority: int = 0,
        is_active: bool = True,
        name: str | None = None,
        created_at: datetime | None = None,
    ) -> AutomationRule:
        rule = AutomationRule(
            name=name or f"{trigger.lower()} rule",
            trigger=trigger,
            conditions_json=conditions or [],
            actions_json=actions,
            priority=priority,
            is_active=is_active,
        )
        if created_at is not None:
            rule.created_at = created_at
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule

    @staticmethod
    def template(
        db: Session,
        *,
        name: str,
        subject: str = "Hello {{name}}",
        html_content: str = "<p>Hello {{name}}</p>",
        text_content: str | None = "Hello {{name}}",
        is_active: bool = True,
    ) -> EmailTemplate:
        template = EmailTemplate(
            name=name,
            subject=subject,
            html_content=html_content,
            text_content=text_content,
            variables=["name"],
            is_active=is_active,
        )
        db.add(template)
        db.commit()
        db.refresh(template)
        return template

    @staticmethod
    def auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def seed():
    return Seed
