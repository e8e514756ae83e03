"""Catalog listing and per-company price overrides."""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from portal.models import Product, CompanyPrice, AuditAction
from portal.exceptions import NotFoundError
from portal.services import audit_service

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _product_to_dict(product: Product, custom_price: Optional[Decimal]) -> Dict[str, Any]:
    return {
        'id': product.id,
        'sku': product.sku,
        'name': product.name,
        'brand': product.brand,
        'list_price': product.price,
        'price': custom_price if custom_price is not None else product.price,
        'has_custom_price': custom_price is not None,
    }


def _load_products(company_id: int, session: Session, search: Optional[str], page: int, per_page: int) -> Dict[str, Any]:
    query = session.query(Product).filter(
        Product.company_id == company_id,
        Product.active == True
    )

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.brand.ilike(pattern)
        ))

    total = query.count()
    products = query.order_by(Product.name, Product.id).offset((page - 1) * per_page).limit(per_page).all()

    overrides = {}
    if products:
        rows = session.query(CompanyPrice.product_id, CompanyPrice.custom_price).filter(
            CompanyPrice.company_id == company_id,
            CompanyPrice.product_id.in_([p.id for p in products])
        ).all()
        overrides = {product_id: price for product_id, price in rows}

    return {
        'items': [_product_to_dict(p, overrides.get(p.id)) for p in products],
        'page': page,
        'per_page': per_page,
        'total': total,
        'pages': (total + per_page - 1) // per_page if per_page else 0,
    }


def list_products(company_id: int, session: Session, search: Optional[str] = None,
                  page: int = 1, per_page: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    """
    Paginated, tenant-scoped product listing with company prices applied.

    Search matches name, SKU or brand (case-insensitive). Results are cached
    per company when the Redis cache is available.
    """
    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    search = (search or '').strip() or None

    def loader():
        return _load_products(company_id, session, search, page, per_page)

    try:
        from flask import current_app
        from portal.services.cache_service import get_cache

        cache = get_cache()
        key = f"list:{search or ''}:{page}:{per_page}"
        return cache.memoize(company_id, 'catalog', key, loader,
                             ttl=current_app.config.get('CACHE_PRODUCTS_TTL'))
    except RuntimeError:
        # No cache or no app context
        return loader()


def get_product(product_id: int, company_id: int, session: Session) -> Product:
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.company_id == company_id
    ).first()
    if not product:
        raise NotFoundError(f'Produto {product_id} não encontrado.')
    return product


def resolve_unit_price(product: Product, company_id: int, session: Session) -> Decimal:
    """Company-specific price when one is set, otherwise the product list price."""
    custom = session.query(CompanyPrice.custom_price).filter(
        CompanyPrice.company_id == company_id,
        CompanyPrice.product_id == product.id
    ).scalar()
    return custom if custom is not None else product.price


def _invalidate_catalog_cache(company_id: int):
    """Gracefully attempt to invalidate the catalog cache."""
    try:
        from portal.services.cache_service import get_cache
        get_cache().invalidate_module(company_id, 'catalog')
    except RuntimeError:
        pass


def set_company_price(product_id: int, custom_price: Decimal, session: Session, ctx) -> CompanyPrice:
    """Create or update the effective company's price for a product."""
    company_id = ctx.require_company()
    try:
        product = get_product(product_id, company_id, session)

        entry = session.query(CompanyPrice).filter_by(
            company_id=company_id, product_id=product.id
        ).with_for_update().first()

        if entry:
            previous = entry.custom_price
            entry.custom_price = custom_price
        else:
            previous = None
            entry = CompanyPrice(company_id=company_id, product_id=product.id, custom_price=custom_price)
            session.add(entry)

        session.flush()
        audit_service.log_action(
            session, ctx, AuditAction.COMPANY_PRICE_SET,
            resource_type='product', resource_id=product.id,
            details={'sku': product.sku, 'previous': previous, 'custom_price': custom_price}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    _invalidate_catalog_cache(company_id)
    return entry


def delete_company_price(product_id: int, session: Session, ctx) -> None:
    """Remove a company price override; the list price applies again."""
    company_id = ctx.require_company()
    try:
        entry = session.query(CompanyPrice).filter_by(
            company_id=company_id, product_id=product_id
        ).first()
        if not entry:
            raise NotFoundError('Preço personalizado não encontrado.')

        session.delete(entry)
        audit_service.log_action(
            session, ctx, AuditAction.COMPANY_PRICE_REMOVED,
            resource_type='product', resource_id=product_id
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    _invalidate_catalog_cache(company_id)
