"""HTTP controllers for Smart Buffer."""
from .webhook_controller import WebhookController

__all__ = ['WebhookController']
