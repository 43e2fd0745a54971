from alembic import context
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from app.config import Settings
from app.database import Base
from app import models  # noqa: F401

# Load Alembic configuration
config = context.config

# Logging configuration
fileConfig(config.config_file_name)

# Same DATABASE_URL handling as the application, postgres:// included
database_url = Settings.from_env().database_url
if not database_url:
    raise RuntimeError("DATABASE_URL is not set. Please set it in your environment.")

config.set_main_option("sqlalchemy.url", database_url)

# Tables declared in app/models.py
target_metadata = Base.metadata

def run_migrations_offline():
    """Emit the migration SQL without connecting."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    """Apply migrations over a single unpooled connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
