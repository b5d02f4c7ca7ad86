import logging
from dataclasses import dataclass
from typing import Optional

from accounts import Accounts
from circulation import Circulation
from config import settings
from database import Store, seed_default_admin
from library import Library, MetadataResolver
from open_library import OpenLibraryService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request or CLI command needs, sharing one store."""
    store: Store
    library: Library
    circulation: Circulation
    accounts: Accounts


def build_services(data_dir: Optional[str] = None, resolver: Optional[MetadataResolver] = None,
                   seed_admin: Optional[bool] = None) -> Services:
    store = Store(data_dir or settings.data_dir)
    if settings.seed_default_admin if seed_admin is None else seed_admin:
        seed_default_admin(store, settings.seed_admin_name, settings.seed_admin_email)
    return Services(
        store=store,
        library=Library(store, resolver or OpenLibraryService()),
        circulation=Circulation(store),
        accounts=Accounts(store),
    )


# Process-wide instance shared by the API and the CLI
_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
        logger.info(f"Services initialised on {_services.store.data_dir}")
    return _services


def set_services(services: Optional[Services]) -> None:
    """Replace (or with None, drop) the shared instance."""
    global _services
    _services = services
