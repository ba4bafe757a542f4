# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Idempotent demo data: two stores, products with stock, payment methods,
#   a membership tier, a member customer and a 10% promo code.
#
# Inventory inspection:
# - python -m flask inventory show --store-id 1 [--product-id 5] [--movements 10]
#   Print stock levels (and recent movements for a single product).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    Store,
    Product,
    Inventory,
    PaymentMethod,
    CustomerDiscount,
    Customer,
    Discount,
)
from .errors import SettlementError
from .services import inventory_service


SEED_USER_ID = 1

DEMO_STORES = [
    ("MAIN", "Main Street Store"),
    ("MALL", "City Mall Kiosk"),
]

# (sku, name, price_cents, cost_cents, minimum_stock, initial_qty)
DEMO_PRODUCTS = [
    ("SKU-TEE-001", "Basic Tee", 15000, 8000, 5, 40),
    ("SKU-JNS-001", "Slim Jeans", 45000, 25000, 3, 20),
    ("SKU-CAP-001", "Logo Cap", 9000, 4000, 5, 30),
    ("SKU-SOX-003", "Socks 3-Pack", 6000, 2500, 10, 60),
]

# (code, name, fee_percentage_bps, fee_fixed_cents)
DEMO_PAYMENT_METHODS = [
    ("CASH", "Cash", 0, 0),
    ("CARD", "Debit/Credit Card", 150, 0),
    ("EWALLET", "E-Wallet", 70, 100),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to load demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Load demo master data (idempotent).

    Creates stores, products with opening stock in the first store,
    payment methods, a Gold membership tier, one member customer and
    the PROMO10 promo code. Existing rows (by code/sku) are left alone.
    """
    stores = []
    for code, name in DEMO_STORES:
        store = db.session.query(Store).filter_by(code=code).first()
        if store:
            click.echo(f"WARN  Store '{code}' already exists, skipping...")
        else:
            store = Store(code=code, name=name, is_active=True)
            db.session.add(store)
            click.echo(f"PASS Created store: {name} ({code})")
        stores.append(store)

    for code, name, fee_bps, fee_fixed in DEMO_PAYMENT_METHODS:
        if db.session.query(PaymentMethod).filter_by(code=code).first():
            continue
        db.session.add(PaymentMethod(
            code=code, name=name, fee_percentage_bps=fee_bps, fee_fixed_cents=fee_fixed, is_active=True,
        ))
        click.echo(f"PASS Created payment method: {name}")

    tier = db.session.query(CustomerDiscount).filter_by(name="Gold").first()
    if not tier:
        tier = CustomerDiscount(
            name="Gold",
            discount_percentage_bps=500,
            minimum_purchase_cents=10000,
            maximum_discount_cents=50000,
            is_active=True,
        )
        db.session.add(tier)
        db.session.flush()
        click.echo("PASS Created membership tier: Gold (5%)")

    if not db.session.query(Customer).filter_by(code="CUST-0001").first():
        db.session.add(Customer(code="CUST-0001", name="Demo Member", customer_discount_id=tier.id))
        click.echo("PASS Created customer: Demo Member (CUST-0001)")

    if not db.session.query(Discount).filter_by(code="PROMO10").first():
        db.session.add(Discount(
            name="Ten Percent Off",
            code="PROMO10",
            type="percentage",
            value=1000,
            minimum_amount_cents=50000,
            maximum_discount_cents=100000,
            usage_limit=100,
            is_active=True,
        ))
        click.echo("PASS Created promo: PROMO10 (10%)")

    db.session.commit()

    main_store = stores[0]
    for sku, name, price, cost, minimum, qty in DEMO_PRODUCTS:
        product = db.session.query(Product).filter_by(sku=sku).first()
        if product:
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        product = Product(
            sku=sku, name=name, price_cents=price, cost_cents=cost, minimum_stock=minimum, is_active=True,
        )
        db.session.add(product)
        db.session.commit()

        try:
            inventory_service.receive_stock(
                store_id=main_store.id,
                product_id=product.id,
                quantity=qty,
                unit_cost_cents=cost,
                user_id=SEED_USER_ID,
                notes="Opening stock",
            )
            click.echo(f"PASS Created product: {name} ({sku}) with {qty} units in {main_store.code}")
        except SettlementError as e:
            click.echo(f"FAIL Failed to stock '{sku}': {e.message}")

    click.echo("\n" + "="*60)
    click.echo("DONE Demo data loaded")
    click.echo("="*60)


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('show')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--product-id', type=int, help='Limit to one product')
@click.option('--movements', 'movement_limit', type=int, default=10, show_default=True,
              help='Recent movements to print when --product-id is given')
@with_appcontext
def show_inventory(store_id, product_id, movement_limit):
    """Print stock levels for a store."""
    store = db.session.get(Store, store_id)
    if not store:
        click.echo(f"FAIL Store {store_id} not found")
        raise SystemExit(1)

    query = db.session.query(Inventory).filter_by(store_id=store_id)
    if product_id:
        query = query.filter_by(product_id=product_id)
    rows = query.order_by(Inventory.product_id).all()

    click.echo(f"\nInventory for {store.name} ({store.code}):")
    click.echo("-" * 72)
    click.echo(f"{'Product':<30} {'Qty':>8} {'Avg cost':>12} {'Status':<14}")
    click.echo("-" * 72)
    for inv in rows:
        name = inv.product.name if inv.product else f"#{inv.product_id}"
        click.echo(f"{name:<30} {inv.quantity:>8} {inv.average_cost_cents:>12} {inv.stock_status:<14}")
    if not rows:
        click.echo("(no inventory rows)")

    if product_id:
        movements = inventory_service.list_movements(store_id, product_id, limit=movement_limit)
        click.echo(f"\nLast {len(movements)} movements:")
        for m in movements:
            click.echo(
                f"  {m.movement_date:%Y-%m-%d %H:%M}  {m.type:<13} "
                f"{m.quantity_before:>6} {m.quantity_change:>+6} -> {m.quantity_after:<6} {m.notes or ''}"
            )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
