import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


logger = logging.getLogger(__name__)

engine = create_engine(config.DATABASE_URL)

# Availability is resolved from three separate reads; on Postgres they must
# see one snapshot.
session_engine = (
    engine.execution_options(isolation_level='REPEATABLE READ')
    if engine.dialect.name == 'postgresql'
    else engine
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=session_engine,
)

Base = declarative_base()

_schema_lock = Lock()
_scheduling_schema_checked = False

# Columns added after the first release of each table.
MIGRATION_STEPS = {
    'schedules': [
        ('valid_from', 'ALTER TABLE schedules ADD COLUMN valid_from DATE'),
        ('valid_until', 'ALTER TABLE schedules ADD COLUMN valid_until DATE'),
        ('notes', 'ALTER TABLE schedules ADD COLUMN notes VARCHAR'),
    ],
    'schedule_blocks': [
        ('recurring_yearly', 'ALTER TABLE schedule_blocks ADD COLUMN recurring_yearly BOOLEAN DEFAULT FALSE'),
    ],
    'appointments': [
        ('appointment_type', "ALTER TABLE appointments ADD COLUMN appointment_type VARCHAR DEFAULT 'first_visit'"),
        ('reason', 'ALTER TABLE appointments ADD COLUMN reason VARCHAR'),
        ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
        ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR'),
        ('cancelled_at', 'ALTER TABLE appointments ADD COLUMN cancelled_at TIMESTAMP'),
    ],
}


def ensure_scheduling_schema() -> None:
    global _scheduling_schema_checked

    if _scheduling_schema_checked:
        return

    with _schema_lock:
        if _scheduling_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        with engine.begin() as connection:
            for table_name, migration_steps in MIGRATION_STEPS.items():
                if table_name not in table_names:
                    continue

                existing_columns = {column['name'] for column in inspector.get_columns(table_name)}
                for column_name, statement in migration_steps:
                    if column_name not in existing_columns:
                        logger.info('Adding column %s.%s', table_name, column_name)
                        connection.execute(text(statement))

            if 'schedule_blocks' in table_names:
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_schedule_blocks_professional_date ON schedule_blocks(professional_id, date)')
                )
            if 'appointments' in table_names:
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_appointments_professional_date ON appointments(professional_id, date)')
                )

        _scheduling_schema_checked = True
