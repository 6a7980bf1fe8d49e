"""
Seed the default billing plans.

This script seeds:
- Silver (quarterly), Gold (half yearly) and Platinum (yearly) plans

Existing plans (matched by name) are updated in place. Run after migrations.
"""
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from crm_billing.core.database import SessionLocal
from crm_billing.models.plan import Plan
from crm_billing.services.catalog import validate_plan_definition

MODULES = ("attendance", "leave", "payroll", "recruitment", "performance", "analytics", "api_access")


def _modules(*enabled: str) -> dict:
    return {name: name in enabled for name in MODULES}


PLANS = [
    {
        "name": "Silver",
        "description": "Quarterly billing plan. Ideal for small teams getting started with HRMS.",
        "price_per_user": Decimal("129.00"),
        "billing_cycle": "quarterly",
        "billing_months": 3,
        "min_users": 5,
        "max_users": 100,
        "features": [
            "Attendance Management",
            "Leave Management",
            "Basic Payroll",
            "Employee Self Service",
        ],
        "module_access": _modules("attendance", "leave", "payroll"),
    },
    {
        "name": "Gold",
        "description": "Half yearly billing plan. Perfect for growing companies needing advanced features.",
        "price_per_user": Decimal("109.00"),
        "billing_cycle": "half_yearly",
        "billing_months": 6,
        "min_users": 5,
        "max_users": 300,
        "features": [
            "Attendance Management",
            "Leave Management",
            "Advanced Payroll",
            "Employee Self Service",
            "Recruitment",
            "Performance Management",
        ],
        "module_access": _modules("attendance", "leave", "payroll", "recruitment", "performance"),
    },
    {
        "name": "Platinum",
        "description": "Yearly billing plan. Best value for large enterprises with full feature access.",
        "price_per_user": Decimal("99.00"),
        "billing_cycle": "yearly",
        "billing_months": 12,
        "min_users": 5,
        "max_users": 500,
        "features": [
            "Attendance Management",
            "Leave Management",
            "Advanced Payroll",
            "Employee Self Service",
            "Recruitment",
            "Performance Management",
            "Analytics & Reports",
            "API Access",
        ],
        "module_access": _modules(*MODULES),
    },
]


def seed_plans(db):
    """Create or update the default plans."""
    for definition in PLANS:
        validate_plan_definition(
            definition["billing_cycle"],
            definition["billing_months"],
            definition["min_users"],
            definition["max_users"],
            definition["price_per_user"],
        )
        plan = db.query(Plan).filter(Plan.name == definition["name"]).first()
        if plan:
            for key, value in definition.items():
                setattr(plan, key, value)
            plan.is_active = True
            print(f"✅ Updated plan: {definition['name']} (₹{definition['price_per_user']}/user, {definition['billing_cycle']})")
        else:
            db.add(Plan(billing_type="prepaid", is_active=True, **definition))
            print(f"✅ Created plan: {definition['name']} (₹{definition['price_per_user']}/user, {definition['billing_cycle']})")

    db.commit()


def main():
    print("=" * 60)
    print("Seeding Billing Plans")
    print("=" * 60)

    db = SessionLocal()
    try:
        seed_plans(db)
        print("\n✅ Plans seeded successfully!")
    except Exception as e:
        db.rollback()
        print(f"\n❌ Error seeding plans: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
