from booking_engine.messaging.service import MessageService, create_thread_id

__all__ = ["MessageService", "create_thread_id"]
