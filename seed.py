from dotenv import load_dotenv

load_dotenv()

from faker import Faker  # noqa: E402
import random  # noqa: E402
from datetime import date, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

from khata.core.context import UserContext  # noqa: E402
from khata.core.database import Base, SessionLocal, engine  # noqa: E402
from khata.models.entity import Entity, EntityKind, UserEntity  # noqa: E402
from khata.models.ledger_entry import EntryKind, LedgerEntry, LineItem  # noqa: E402
from khata.models.product import Product  # noqa: E402
from khata.services import entity_service, inventory_service, ledger_service  # noqa: E402

fake = Faker()
ctx = UserContext(user_id="seed-user")


def random_day(max_days_back: int = 365) -> str:
    return (date.today() - timedelta(days=random.randint(0, max_days_back))).isoformat()


Base.metadata.create_all(bind=engine)
db = SessionLocal()

try:
    print("🔄 Clearing existing data...")
    entry_ids = [row.id for row in db.query(LedgerEntry.id).filter(LedgerEntry.user_id == ctx.user_id)]
    if entry_ids:
        db.query(LineItem).filter(LineItem.entry_id.in_(entry_ids)).delete(synchronize_session=False)
    db.query(LedgerEntry).filter(LedgerEntry.user_id == ctx.user_id).delete(synchronize_session=False)
    db.query(UserEntity).filter(UserEntity.user_id == ctx.user_id).delete(synchronize_session=False)
    db.query(Entity).filter(Entity.user_id == ctx.user_id).delete(synchronize_session=False)
    db.query(Product).filter(Product.user_id == ctx.user_id).delete(synchronize_session=False)
    db.commit()
    print("✅ Data cleared.")

    print("🔄 Creating products...")
    products = []
    for _ in range(15):
        cost = Decimal(str(round(random.uniform(20, 400), 2)))
        products.append(inventory_service.create_product(
            db, ctx,
            name=fake.word().capitalize(),
            unit_price=(cost * Decimal("1.25")).quantize(Decimal("0.01")),
            unit_cost=cost,
            quantity_on_hand=random.randint(50, 200),
        ))
    print(f"✅ Seeded {len(products)} products")

    print("🔄 Creating customers, suppliers and expense categories...")
    customers = [entity_service.create_entity(db, ctx, EntityKind.customer, fake.name(),
                                              ''.join(filter(str.isdigit, fake.phone_number()))[:20])
                 for _ in range(random.randint(20, 30))]
    suppliers = [entity_service.create_entity(db, ctx, EntityKind.supplier, fake.company())
                 for _ in range(random.randint(10, 15))]
    categories = [entity_service.create_entity(db, ctx, EntityKind.expense, name)
                  for name in ("Rent", "Electricity", "Salaries", "Transport")]
    print(f"✅ Seeded {len(customers)} customers, {len(suppliers)} suppliers, {len(categories)} categories")

    print("🔄 Creating sales and payments...")
    sales = 0
    for customer in customers:
        for _ in range(random.randint(2, 8)):
            if random.choice([True, False]):
                cart = [
                    {"product_id": p.id, "quantity": random.randint(1, 5)}
                    for p in random.sample(products, random.randint(1, 3))
                ]
                ledger_service.add_entry(db, ctx, customer.id, EntryKind.sale, random_day(), line_items=cart)
            else:
                ledger_service.add_entry(db, ctx, customer.id, EntryKind.sale, random_day(),
                                         amount=round(random.uniform(100, 5000), 2))
            sales += 1
        db.refresh(customer)
        if customer.total_balance > 0 and random.choice([True, False]):
            paid = (customer.total_balance * Decimal(str(random.uniform(0.2, 1)))).quantize(Decimal("0.01"))
            ledger_service.add_entry(db, ctx, customer.id, EntryKind.payment, random_day(90),
                                     amount=paid, note="Seed payment")
    print(f"✅ Seeded {sales} sales")

    print("🔄 Creating purchases and expenses...")
    for supplier in suppliers:
        for _ in range(random.randint(1, 5)):
            ledger_service.add_entry(db, ctx, supplier.id, EntryKind.purchase, random_day(),
                                     amount=round(random.uniform(500, 20000), 2))
    for category in categories:
        for _ in range(random.randint(3, 12)):
            ledger_service.add_entry(db, ctx, category.id, EntryKind.expense, random_day(),
                                     amount=round(random.uniform(50, 3000), 2), note=fake.sentence())
    print("✅ Seeded purchases and expenses")

except Exception as e:
    db.rollback()
    print(f"❌ Seeding failed: {e}")
    raise
finally:
    db.close()
