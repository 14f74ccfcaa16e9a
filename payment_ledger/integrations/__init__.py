"""External integrations for payment processing."""
from .gateway import GatewayResult, MockPaymentGateway, PaymentGateway

__all__ = ["GatewayResult", "MockPaymentGateway", "PaymentGateway"]
