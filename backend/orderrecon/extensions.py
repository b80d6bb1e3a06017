# Overview: Flask extension instances for database, migrations and remote service clients.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


class RemoteServices:
    """
    Registry of the three remote service clients (orders, inventory,
    receivables), stored per app in app.extensions.

    Clients are built from config unless the caller injects them
    (tests pass in-memory fakes).
    """

    EXTENSION_KEY = "orderrecon.remote_services"

    def init_app(self, app, *, orders=None, inventory=None, receivables=None) -> None:
        from .clients.orders import OrderServiceClient
        from .clients.inventory import InventoryServiceClient
        from .clients.receivables import ReceivablesServiceClient

        options = dict(
            timeout=app.config["RECON_HTTP_TIMEOUT"],
            read_attempts=app.config["RECON_READ_RETRY_ATTEMPTS"],
            backoff_base=app.config["RECON_RETRY_BACKOFF_BASE"],
            token=app.config.get("RECON_API_TOKEN"),
        )
        app.extensions[self.EXTENSION_KEY] = {
            "orders": orders or OrderServiceClient(app.config["RECON_ORDER_SERVICE_URL"], **options),
            "inventory": inventory or InventoryServiceClient(app.config["RECON_INVENTORY_SERVICE_URL"], **options),
            "receivables": receivables or ReceivablesServiceClient(app.config["RECON_RECEIVABLES_SERVICE_URL"], **options),
        }

    def _get(self, name: str):
        return current_app.extensions[self.EXTENSION_KEY][name]

    @property
    def orders(self):
        return self._get("orders")

    @property
    def inventory(self):
        return self._get("inventory")

    @property
    def receivables(self):
        return self._get("receivables")


remote_services = RemoteServices()
