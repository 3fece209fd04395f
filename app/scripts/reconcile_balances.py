"""
Rebuild Student.fee_paid / balance from completed payments and clear reconciliation flags.

Run while no payment transitions are in flight.

Usage:
  python -m app.scripts.reconcile_balances
  python -m app.scripts.reconcile_balances --student-id 6f1c...
"""

import argparse
import asyncio
from typing import Optional
from uuid import UUID

# Registers the User mapper referenced by Student
import app.auth.models  # noqa: F401
from app.api.v1.payments.reconciliation import reconcile_balances
from app.db.session import AsyncSessionLocal


async def run(student_id: Optional[UUID] = None) -> None:
    async with AsyncSessionLocal() as session:
        result = await reconcile_balances(session, student_id=student_id)

    print(f"Students checked: {result.students_checked}")
    if not result.corrected:
        print("No drift found.")
        return
    print(f"Corrected {len(result.corrected)} student(s):")
    for item in result.corrected:
        print(
            f"  {item.student_id}: fee_paid {item.previous_fee_paid} -> {item.fee_paid}, "
            f"balance {item.previous_balance} -> {item.balance}"
        )


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile student fee balances with completed payments")
    parser.add_argument("--student-id", type=UUID, default=None, help="Only reconcile this student")
    args = parser.parse_args()
    asyncio.run(run(args.student_id))


if __name__ == "__main__":
    main()
