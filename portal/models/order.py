"""Order model (pedido B2B) and its status/stage enums."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from portal.database import Base, BigIntPK


class OrderStatus(enum.Enum):
    """Commercial state of an order."""
    QUOTE = 'QUOTE'
    GENERATED = 'GENERATED'
    INVOICED = 'INVOICED'
    CANCELLED = 'CANCELLED'


class OrderStage(enum.Enum):
    """Fulfillment pipeline position, orthogonal to OrderStatus."""
    AWAITING_PRINT = 'AWAITING_PRINT'
    PRINTED = 'PRINTED'
    SEPARATED = 'SEPARATED'
    CHARGED = 'CHARGED'
    VERIFY_RECEIPT = 'VERIFY_RECEIPT'
    IN_VERIFICATION = 'IN_VERIFICATION'
    AWAITING_SHIPMENT = 'AWAITING_SHIPMENT'
    SHIPPED = 'SHIPPED'


class OrderChannel(enum.Enum):
    """Where the order came from."""
    SITE = 'SITE'
    ADMIN = 'ADMIN'
    REPRESENTATIVE = 'REPRESENTATIVE'
    API = 'API'


STAGE_PIPELINE = (
    OrderStage.AWAITING_PRINT,
    OrderStage.PRINTED,
    OrderStage.SEPARATED,
    OrderStage.CHARGED,
    OrderStage.VERIFY_RECEIPT,
    OrderStage.IN_VERIFICATION,
    OrderStage.AWAITING_SHIPMENT,
    OrderStage.SHIPPED,
)

STAGE_LABELS = {
    OrderStage.AWAITING_PRINT: 'Aguardando impressão',
    OrderStage.PRINTED: 'Pedido impresso',
    OrderStage.SEPARATED: 'Pedido separado',
    OrderStage.CHARGED: 'Cobrado',
    OrderStage.VERIFY_RECEIPT: 'Conferir comprovante',
    OrderStage.IN_VERIFICATION: 'Em conferência',
    OrderStage.AWAITING_SHIPMENT: 'Aguardando envio',
    OrderStage.SHIPPED: 'Pedido enviado',
}

# Legacy spellings still sent by older clients and stored in exported data
LEGACY_STAGE_ALIASES = {
    'PENDENTE_IMPRESSAO': OrderStage.AWAITING_PRINT,
    'AGUARDANDO_IMPRESSAO': OrderStage.AWAITING_PRINT,
    'AGUARDANDO': OrderStage.AWAITING_PRINT,
    'IMPRESSO': OrderStage.PRINTED,
    'PEDIDO_IMPRESSO': OrderStage.PRINTED,
    'SEPARADO': OrderStage.SEPARATED,
    'PEDIDO_SEPARADO': OrderStage.SEPARATED,
    'COBRADO': OrderStage.CHARGED,
    'CONFERIR_COMPROVANTE': OrderStage.VERIFY_RECEIPT,
    'EM_CONFERENCIA': OrderStage.IN_VERIFICATION,
    'AGUARDANDO_ENVIO': OrderStage.AWAITING_SHIPMENT,
    'ENVIADO': OrderStage.SHIPPED,
    'PEDIDO_ENVIADO': OrderStage.SHIPPED,
    'FINALIZADO': OrderStage.SHIPPED,
}

LEGACY_STATUS_ALIASES = {
    'ORCAMENTO': OrderStatus.QUOTE,
    'ORCAMENTO_ABERTO': OrderStatus.QUOTE,
    'ORCAMENTO_CONCLUIDO': OrderStatus.QUOTE,
    'GERADO': OrderStatus.GENERATED,
    'PEDIDO_GERADO': OrderStatus.GENERATED,
    'FATURADO': OrderStatus.INVOICED,
    'PEDIDO_FATURADO': OrderStatus.INVOICED,
    'CANCELADO': OrderStatus.CANCELLED,
    'PEDIDO_CANCELADO': OrderStatus.CANCELLED,
}


def parse_stage(value) -> OrderStage:
    """
    Normalize an incoming stage value to OrderStage.

    Accepts OrderStage members, canonical names and legacy aliases
    (case-insensitive).

    Raises:
        ValueError: If value is not a known stage
    """
    if isinstance(value, OrderStage):
        return value
    if value is None:
        raise ValueError('Etapa não informada.')

    key = str(value).strip().upper()
    if key in OrderStage.__members__:
        return OrderStage[key]
    if key in LEGACY_STAGE_ALIASES:
        return LEGACY_STAGE_ALIASES[key]
    raise ValueError(f'Etapa inválida: {value}')


def parse_status(value) -> OrderStatus:
    """Normalize an incoming status value to OrderStatus (see parse_stage)."""
    if isinstance(value, OrderStatus):
        return value
    if value is None:
        raise ValueError('Status não informado.')

    key = str(value).strip().upper()
    if key in OrderStatus.__members__:
        return OrderStatus[key]
    if key in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[key]
    raise ValueError(f'Status inválido: {value}')


class Order(Base):
    """
    B2B order.

    Monetary fields are derived by the totals service; never write them from
    request data. Orders are never deleted: cancellation is a status.
    """

    __tablename__ = 'b2b_order'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    created_by_user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    order_number = Column(String(20), nullable=False, unique=True)
    channel = Column(Enum(OrderChannel, name='order_channel'), nullable=False, default=OrderChannel.SITE)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.QUOTE)
    stage = Column(Enum(OrderStage, name='order_stage'), nullable=False, default=OrderStage.AWAITING_PRINT)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_total = Column(Numeric(12, 2), nullable=False, default=0)
    freight = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    printed_at = Column(DateTime(timezone=True), nullable=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Optimistic concurrency: stale writes raise StaleDataError
    __mapper_args__ = {'version_id_col': version_id}

    # Relationships
    company = relationship('Company')
    created_by = relationship('AppUser', foreign_keys=[created_by_user_id])
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan', order_by='OrderItem.id')

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status={self.status.value}, stage={self.stage.value}, total={self.total})>"

    @property
    def is_cancelled(self):
        return self.status == OrderStatus.CANCELLED

    @property
    def is_editable(self):
        """Items and discounts can change only while the order is a quote or generated."""
        return self.status in (OrderStatus.QUOTE, OrderStatus.GENERATED)
