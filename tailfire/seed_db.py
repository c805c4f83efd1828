from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from tailfire.infra.db import SessionLocal
from tailfire.infra.models import ActivityPricingORM, PaymentScheduleTemplateORM
from tailfire.logging_config import setup_logging
from tailfire.services.payment_templates_service import create_template
from tailfire.services.schedule_types import ScheduleType

DEMO_AGENCY = "demo-agency"
DEMO_USER = "seed"

STANDARD_3_PAY = [
    {"sequence_order": 0, "payment_name": "Deposit", "percentage": Decimal("25"), "days_from_booking": 0},
    {"sequence_order": 1, "payment_name": "Second Payment", "percentage": Decimal("25"), "days_before_departure": 90},
    {"sequence_order": 2, "payment_name": "Final Balance", "percentage": Decimal("50"), "days_before_departure": 45},
]


def main() -> None:
    logger = setup_logging()
    db = SessionLocal()
    try:
        # ---------- ACTIVITY PRICING ----------
        pricing = db.scalar(
            select(ActivityPricingORM).where(
                ActivityPricingORM.agency_id == DEMO_AGENCY,
                ActivityPricingORM.activity_name == "Mediterranean Cruise",
            )
        )
        if not pricing:
            pricing = ActivityPricingORM(
                agency_id=DEMO_AGENCY,
                activity_name="Mediterranean Cruise",
                total_price_cents=600000,
                currency="CAD",
            )
            db.add(pricing)
            db.flush()
            logger.info("Activity pricing created id=%s", pricing.id)
        else:
            logger.info("Activity pricing already exists id=%s", pricing.id)

        # ---------- TEMPLATE ----------
        template = db.scalar(
            select(PaymentScheduleTemplateORM).where(
                PaymentScheduleTemplateORM.agency_id == DEMO_AGENCY,
                PaymentScheduleTemplateORM.name == "Standard 3-pay",
            )
        )
        if not template:
            template = create_template(
                db,
                agency_id=DEMO_AGENCY,
                user_id=DEMO_USER,
                name="Standard 3-pay",
                description="25% at booking, 25% at 90 days, balance at 45 days before departure",
                schedule_type=ScheduleType.INSTALLMENTS,
                items=STANDARD_3_PAY,
                is_default=True,
            )
            logger.info("Template created id=%s", template.id)
        else:
            logger.info("Template already exists id=%s", template.id)

        db.commit()
        logger.info("Seed finished")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
