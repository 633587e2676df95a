import asyncio

from bundlecart.core.config import get_settings
from bundlecart.core.logging import configure_logging, get_logger
from bundlecart.infrastructure.db.session import init_engine, session_factory
from bundlecart.services.bundle_admin_service import BundleAdminService


async def audit_catalog() -> list[int]:
    async with session_factory() as session:
        return await BundleAdminService(session).audit_bundles()


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    log = get_logger(__name__)

    await init_engine()
    log.info("database_ready", database=settings.db_name)

    broken = await audit_catalog()
    log.info("bundle_audit_finished", unconfigured=len(broken), bundle_ids=broken)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
