"""SessionContext — explicit owner of one user's sync stack.

Everything the sync core needs (database, cache, outbox, server client,
connectivity gate, sync manager) hangs off one object that callers pass
around. Two contexts on two database files never share state.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

import httpx

from picking_sync.config import Config
from picking_sync.database.cache_store import EntityCacheStore
from picking_sync.database.connection import DatabaseConnection
from picking_sync.database.outbox import Outbox
from picking_sync.database.schema import initialize_database
from picking_sync.remote.client import ConnectivityError, OdooClient
from picking_sync.remote.connectivity import ConnectivityGate
from picking_sync.sync.sync_manager import SyncManager

logger = logging.getLogger(__name__)


class SessionContext:
    """Builds and tears down the sync stack for one server session.

    Constructor arguments default to :class:`Config` values; nothing is
    read from ``Config`` after construction.
    """

    def __init__(self, db_path=None, base_url: Optional[str] = None,
                 db_name: Optional[str] = None,
                 odoo_version: Optional[int] = None,
                 company_id: Optional[int] = None,
                 allowed_company_ids: Optional[list[int]] = None,
                 request_timeout: Optional[float] = None,
                 probe_timeout: Optional[float] = None,
                 page_size: Optional[int] = None,
                 transport: Optional[httpx.BaseTransport] = None,
                 interface_check: Optional[Callable[[], bool]] = None,
                 last_sync: Optional[str] = None,
                 on_synced: Optional[Callable[[str], None]] = None):
        self.db_path = Path(db_path or Config.DATABASE_PATH)
        self.base_url = base_url if base_url is not None else Config.ODOO_URL
        self.db_name = db_name if db_name is not None else Config.ODOO_DB
        self.odoo_version = odoo_version or Config.ODOO_VERSION
        self.company_id = company_id if company_id is not None else Config.COMPANY_ID
        self.allowed_company_ids = list(
            allowed_company_ids if allowed_company_ids is not None
            else Config.ALLOWED_COMPANY_IDS
        )
        self.request_timeout = request_timeout or Config.REQUEST_TIMEOUT
        self.probe_timeout = probe_timeout or Config.PROBE_TIMEOUT
        self.page_size = page_size or Config.PAGE_SIZE
        self._transport = transport
        self._interface_check = interface_check
        self.last_sync = last_sync if last_sync is not None else Config.LAST_SYNC_TIMESTAMP
        self._on_synced = on_synced
        self._login = ""
        self._password = ""

        self.db: Optional[DatabaseConnection] = None
        self.cache: Optional[EntityCacheStore] = None
        self.outbox: Optional[Outbox] = None
        self.client: Optional[OdooClient] = None
        self.gate: Optional[ConnectivityGate] = None
        self.sync: Optional[SyncManager] = None

    @property
    def is_initialized(self) -> bool:
        return self.sync is not None

    @property
    def is_authenticated(self) -> bool:
        return self.client is not None and self.client.is_authenticated

    def init(self, login: str = "", password: str = "") -> "SessionContext":
        """Open the local store and, when reachable, log in to the server.

        Being offline is not an error: the session works from the cache and
        queues writes until ``refresh`` succeeds.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db = DatabaseConnection(self.db_path)
        initialize_database(self.db)
        self.cache = EntityCacheStore(self.db)
        self.outbox = Outbox(self.db)
        self.client = OdooClient(
            self.base_url, self.db_name,
            timeout=self.request_timeout,
            company_id=self.company_id,
            allowed_company_ids=self.allowed_company_ids,
            transport=self._transport,
        )
        self.gate = ConnectivityGate(
            self.base_url, timeout=self.probe_timeout,
            interface_check=self._interface_check,
            transport=self._transport,
        )
        self.sync = SyncManager(
            self.cache, self.outbox, self.client, self.gate,
            odoo_version=self.odoo_version,
            page_size=self.page_size,
            last_sync=self.last_sync,
            on_synced=self._on_synced,
        )
        self._login = login
        self._password = password
        if login:
            self._authenticate()
        logger.info(f"Session ready on {self.db_path}")
        return self

    def _authenticate(self) -> bool:
        if not self.gate.is_online():
            logger.warning("Server unreachable, starting offline")
            return False
        try:
            self.client.authenticate(self._login, self._password)
        except ConnectivityError as e:
            logger.warning(f"Login failed, starting offline: {e}")
            return False
        if self.company_id is None:
            self.company_id = self.client.company_id
        return True

    def refresh(self, company_id: Optional[int] = None,
                allowed_company_ids: Optional[list[int]] = None) -> bool:
        """Switch company and/or log in again. Returns True when authenticated."""
        if not self.is_initialized:
            raise RuntimeError("Session is not initialized")
        if company_id is not None:
            allowed = list(allowed_company_ids or self.allowed_company_ids)
            if company_id not in allowed:
                allowed.append(company_id)
            self.company_id = company_id
            self.allowed_company_ids = allowed
            self.client.set_company(company_id, allowed)
        if self._login:
            return self._authenticate()
        return self.is_authenticated

    def teardown(self, clear_cache: bool = False, discard_pending: bool = False):
        """Close the session; optionally wipe the cache and the outbox.

        The local-id counter is never reset, so ids minted in a later
        session cannot collide with ids still referenced somewhere.
        """
        if self.cache is not None and clear_cache:
            self.cache.clear_all()
        if self.outbox is not None and discard_pending:
            self.outbox.clear_all()
        if self.client is not None:
            self.client.close()
        self._login = ""
        self._password = ""
        self.sync = None
        self.gate = None
        self.client = None
        self.outbox = None
        self.cache = None
        self.db = None

    def __enter__(self):
        if not self.is_initialized:
            self.init()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.teardown()
        return False
