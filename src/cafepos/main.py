from __future__ import annotations

import logging

from cafepos.application.container import build_container
from cafepos.config import get_app_paths, load_settings
from cafepos.logging_config import setup_logging

log = logging.getLogger(__name__)


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    settings = load_settings()
    container = build_container(paths.db_path, settings)

    seeded = container.catalog.seed_demo_catalog()
    if seeded:
        log.info("demo_catalog_seeded products=%s", seeded)

    products = container.catalog.list_products()
    low = [p.id for p in products if p.is_low_stock]
    log.info(
        "startup db=%s products=%s low_stock=%s sales=%s ai_enabled=%s",
        paths.db_path, len(products), low, len(container.ledger.list_sales()), bool(settings.ai_api_key),
    )


if __name__ == "__main__":
    main()
