from __future__ import annotations

import logging

from sqlalchemy import select

from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import Client, Supplier

logger = logging.getLogger(__name__)


def run_seed():
    db = SessionLocal()
    try:
        # 1) Supplier de démo
        supplier = db.scalar(select(Supplier).where(Supplier.name == "Demo Supplier"))
        if not supplier:
            db.add(Supplier(name="Demo Supplier", email="supplier@example.com", tax_id="FR00000000001"))
            db.commit()

        # 2) Client de démo
        client = db.scalar(select(Client).where(Client.name == "Demo Client"))
        if not client:
            db.add(Client(name="Demo Client", email="client@example.com"))
            db.commit()

        logger.info("SEED OK: supplier=Demo Supplier, client=Demo Client")
    finally:
        db.close()


if __name__ == "__main__":
    from backend.app.core.config import get_settings
    from backend.app.core.logging_config import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level, "text")
    run_seed()
