import os, sys
from pathlib import Path
from alembic import context
from sqlalchemy import create_engine, pool

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

from village_monitor.config import load_settings
from village_monitor.models import Base

config = context.config
target_metadata = Base.metadata

# async drivers -> their sync counterparts for migrations
SYNC_DRIVERS = {"+asyncpg": "+psycopg", "+aiosqlite": ""}


def get_url() -> str:
    url = os.getenv("ALEMBIC_DATABASE_URL")
    if not url:
        # alembic.ini only applies when the app has no DATABASE_URL of its own
        url = load_settings().database_url if os.getenv("DATABASE_URL") else config.get_main_option("sqlalchemy.url", "")
    for async_driver, sync_driver in SYNC_DRIVERS.items():
        url = url.replace(async_driver, sync_driver)
    return url


def run_migrations_offline():
    context.configure(url=get_url(), target_metadata=target_metadata, literal_binds=True, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = create_engine(get_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
