# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo store with users, a small catalog and customers.
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Corner Shop" --code "CSHP" --tax-rate-bps 800
#
# Users:
# - python -m flask users create --tenant-id 1 --username admin --email admin@shop.local --password "Password123!" --role admin

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Category, Customer, Tenant, User
from .repositories import customer_repository, product_repository
from .services.auth_service import PasswordValidationError, create_user
from .services.tenant_service import get_or_create_settings
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


DEMO_PASSWORD = "Password123!"

DEMO_CATALOG = [
    # (sku, name, category, price_cents, cost_cents, stock, reorder_level)
    ("COF-001", "House Blend Coffee 250g", "Coffee", 1299, 650, 40, 10),
    ("COF-002", "Espresso Roast 250g", "Coffee", 1499, 720, 25, 10),
    ("TEA-001", "Green Tea 50 bags", "Tea", 599, 210, 60, 15),
    ("TEA-002", "Earl Grey 50 bags", "Tea", 649, 240, 8, 15),
    ("ACC-001", "Ceramic Mug", "Accessories", 999, 300, 12, 5),
    ("ACC-002", "Pour-over Filter Pack", "Accessories", 450, 120, 3, 10),
]

DEMO_CUSTOMERS = [
    ("Ada Lovelace", "ada@example.com", "555-0101"),
    ("Grace Hopper", "grace@example.com", "555-0102"),
]


@system_group.command('seed-demo')
@click.option('--code', default='DEMO', help='Tenant code for the demo store')
@with_appcontext
def seed_demo(code):
    """Seed a demo tenant with users, catalog and customers (idempotent per code)."""
    tenant = db.session.query(Tenant).filter_by(code=code).first()
    if tenant:
        click.echo(f"WARN Tenant '{code}' already exists (ID: {tenant.id}), skipping.")
        return

    tenant = Tenant(name="Demo Store", code=code)
    db.session.add(tenant)
    db.session.flush()
    get_or_create_settings(tenant.id, tax_rate_bps=800, receipt_header="Demo Store")
    db.session.commit()
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")

    for username, role in (("admin", "admin"), ("manager", "manager"), ("cashier", "cashier")):
        create_user(
            tenant.id,
            username,
            f"{username}@{code.lower()}.local",
            DEMO_PASSWORD,
            role=role,
            name=username.title(),
        )
    click.echo("PASS Created users: admin, manager, cashier")

    categories = {}
    for sku, name, category, price, cost, stock, reorder in DEMO_CATALOG:
        if category not in categories:
            categories[category] = Category(tenant_id=tenant.id, name=category)
            db.session.add(categories[category])
            db.session.flush()
        product_repository.create_product(
            tenant.id,
            {
                "sku": sku,
                "name": name,
                "category_id": categories[category].id,
                "price_cents": price,
                "cost_price_cents": cost,
                "stock": stock,
                "reorder_level": reorder,
            },
            commit=False,
        )
    db.session.commit()
    click.echo(f"PASS Created {len(DEMO_CATALOG)} products in {len(categories)} categories")

    for name, email, phone in DEMO_CUSTOMERS:
        customer_repository.create_customer(
            tenant.id, {"name": name, "email": email, "phone": phone}, commit=False
        )
    db.session.commit()
    click.echo(f"PASS Created {len(DEMO_CUSTOMERS)} customers")

    click.echo("\nDemo credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin / manager / cashier  ->  {DEMO_PASSWORD}  (tenant_code: {code})")


# =============================================================================
# TENANT MANAGEMENT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant (store) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<10} {'Active':<8} {'Users':<7} {'Customers'}")
    click.echo("="*80)

    for tenant in tenants:
        user_count = db.session.query(User).filter_by(tenant_id=tenant.id).count()
        customer_count = db.session.query(Customer).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"

        click.echo(
            f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<10} "
            f"{active_str:<8} {user_count:<7} {customer_count}"
        )

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--code', required=True, help='Short code (unique, used as transaction prefix)')
@click.option('--tax-rate-bps', type=click.IntRange(0, 10000), default=None,
              help='Sales tax in basis points (800 = 8%)')
@with_appcontext
def create_tenant_cli(name, code, tax_rate_bps):
    """Create a new tenant with its settings row."""
    code = code.strip().upper()
    if db.session.query(Tenant).filter_by(code=code).first():
        click.echo(f"FAIL Tenant code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code)
    db.session.add(tenant)
    db.session.flush()

    get_or_create_settings(tenant.id, tax_rate_bps=tax_rate_bps)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'cashier']), prompt=True, help='Role')
@click.option('--name', default=None, help='Display name')
@with_appcontext
def create_user_cli(tenant_id, username, email, password, role, name):
    """
    Create a new user inside a tenant.

    Password must have 8+ chars, uppercase, lowercase, digit and special char.
    """
    try:
        user = create_user(tenant_id, username, email, password, role=role, name=name)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except (DomainError, ValidationError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    click.echo(f"     Tenant ID: {user.tenant_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
