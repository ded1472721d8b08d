import os
from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool
from timeflow.db.base import Base  # noqa
from timeflow.core.rbac.models import User  # noqa
from timeflow.core.audit.models import AuditLog  # noqa
from timeflow.core.projects.models import Project, Task, ProjectMember  # noqa
from timeflow.core.timesheets.models import Timesheet, TimeEntry, BillingSnapshot  # noqa
from timeflow.settings import get_settings

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)
target_metadata = Base.metadata

def get_url() -> str:
    return os.environ.get("DATABASE_SYNC_URL", get_settings().DATABASE_SYNC_URL)

def run_migrations_offline() -> None:
    context.configure(url=get_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online() -> None:
    cfg = config.get_section(config.config_ini_section, {})
    cfg["sqlalchemy.url"] = get_url()
    connectable = engine_from_config(cfg, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
