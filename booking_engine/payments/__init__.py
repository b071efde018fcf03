from booking_engine.payments.gateway import CheckoutSession, InMemoryPaymentGateway, PaymentGateway

__all__ = ["PaymentGateway", "CheckoutSession", "InMemoryPaymentGateway"]
