import pytest
from decimal import Decimal

from portal import create_app
from portal.database import Base, db_session, get_session, create_all, drop_all
from portal.models import (
    Company, AppUser, UserCompany, Product, CompanyRole, ApprovalStatus
)
from portal.context import RequestContext


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no Redis)."""
    app = create_app('config.TestConfig')
    with app.app_context():
        create_all()
        yield app
        db_session.remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


def _persist(session, obj):
    session.add(obj)
    session.commit()
    session.refresh(obj)
    return obj


def make_company(session, name, **kwargs):
    kwargs.setdefault('approval_status', ApprovalStatus.APPROVED)
    return _persist(session, Company(
        slug=name.lower().replace(' ', '-'),
        legal_name=f'{name} LTDA',
        trade_name=name,
        active=True,
        **kwargs
    ))


def make_user(session, email, company=None, role=CompanyRole.BUYER, **kwargs):
    kwargs.setdefault('approval_status', ApprovalStatus.APPROVED)
    user = AppUser(email=email, full_name=email.split('@')[0], active=True, **kwargs)
    user.set_password('password123')
    _persist(session, user)
    if company is not None:
        _persist(session, UserCompany(user_id=user.id, company_id=company.id, role=role.value, active=True))
        session.refresh(user)
    return user


def ctx_for(user, company=None, role=None, impersonating=False):
    return RequestContext(
        actor_user_id=user.id,
        is_superadmin=bool(user.is_superadmin),
        effective_company_id=company.id if company is not None else None,
        impersonating=impersonating,
        role=role.value if role is not None else None,
    )


@pytest.fixture(scope='function')
def company1(session):
    return make_company(session, 'Alfa Distribuidora')


@pytest.fixture(scope='function')
def company2(session):
    return make_company(session, 'Beta Atacado')


@pytest.fixture(scope='function')
def admin1(session, company1):
    """Company admin of company1."""
    return make_user(session, 'admin1@alfa.com', company1, role=CompanyRole.COMPANY_ADMIN)


@pytest.fixture(scope='function')
def buyer1(session, company1):
    """Buyer of company1."""
    return make_user(session, 'buyer1@alfa.com', company1, role=CompanyRole.BUYER)


@pytest.fixture(scope='function')
def user2(session, company2):
    """Company admin of company2."""
    return make_user(session, 'admin2@beta.com', company2, role=CompanyRole.COMPANY_ADMIN)


@pytest.fixture(scope='function')
def superadmin(session):
    return make_user(session, 'admin@sistema.com', is_superadmin=True)


@pytest.fixture(scope='function')
def admin_ctx(admin1, company1):
    return ctx_for(admin1, company1, CompanyRole.COMPANY_ADMIN)


@pytest.fixture(scope='function')
def buyer_ctx(buyer1, company1):
    return ctx_for(buyer1, company1, CompanyRole.BUYER)


@pytest.fixture(scope='function')
def product_a(session, company1):
    return _persist(session, Product(company_id=company1.id, sku='SKU-A', name='Parafuso 10mm', brand='Acme', price=Decimal('10.00'), active=True))


@pytest.fixture(scope='function')
def product_b(session, company1):
    return _persist(session, Product(company_id=company1.id, sku='SKU-B', name='Porca 10mm', brand='Acme', price=Decimal('5.00'), active=True))


@pytest.fixture(scope='function')
def product_company2(session, company2):
    return _persist(session, Product(company_id=company2.id, sku='SKU-A', name='Arruela', brand='Beta', price=Decimal('2.50'), active=True))


@pytest.fixture(scope='function')
def order1(session, buyer_ctx, product_a, product_b):
    """Order of company1: 2 x 10.00 + 4 x 5.00 = 40.00."""
    from portal.services.order_service import create_order_from_cart

    cart = {'items': {str(product_a.id): {'qty': 2}, str(product_b.id): {'qty': 4}}}
    return create_order_from_cart(cart, session, buyer_ctx)


def login(client, user, company=None):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
        if company is not None:
            sess['active_company_id'] = company.id
    return client


@pytest.fixture(scope='function')
def authenticated_client(client, buyer1, company1):
    """Client logged in as buyer1 with company1 active."""
    return login(client, buyer1, company1)


@pytest.fixture(scope='function')
def admin_client(client, admin1, company1):
    """Client logged in as admin1 with company1 active."""
    return login(client, admin1, company1)
