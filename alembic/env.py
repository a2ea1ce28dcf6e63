"""Alembic environment; the database URL comes from application config."""

from alembic import context
from sqlalchemy import engine_from_config, pool

from assistant_hub.infra.config import config as app_config
from assistant_hub.infra.schema import metadata

config = context.config
config.set_main_option("sqlalchemy.url", app_config.DATABASE_URL)

target_metadata = metadata


def run_migrations_offline() -> None:
    context.configure(
        url=app_config.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
