# Import all models here so Alembic can discover them.

from connectpay.models.user import User  # noqa: F401
from connectpay.models.connected_account import ConnectedAccount  # noqa: F401
from connectpay.models.order import Order, Refund  # noqa: F401
from connectpay.models.webhook_event import WebhookEvent  # noqa: F401
