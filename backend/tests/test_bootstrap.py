from datetime import date

import pytest
from sqlalchemy import create_engine, inspect, select, text
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.db import bootstrap
from app.models import ScheduleConfiguration, Semester


def _raise_error(message: str):
    raise RuntimeError(message)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


def test_runtime_schema_bootstrap_raises_on_validation_failure(monkeypatch, engine):
    monkeypatch.setattr(
        bootstrap,
        "_assert_required_columns",
        lambda bind: _raise_error("missing required schema"),
    )

    with pytest.raises(RuntimeError, match="Runtime schema compatibility bootstrap failed"):
        bootstrap.ensure_runtime_schema_compatibility(engine)


def test_bootstrap_adds_missing_request_columns(engine):
    with engine.begin() as connection:
        connection.execute(
            text(
                "CREATE TABLE resource_requests ("
                "id VARCHAR(36) PRIMARY KEY, resource_type VARCHAR(20), resource_id VARCHAR(36), "
                "class_session_id VARCHAR(36), requester_id VARCHAR(36), requesting_program_id VARCHAR(36), "
                "target_department_id VARCHAR(36), status VARCHAR(20), notes TEXT, rejection_message TEXT, "
                "reviewed_by VARCHAR(36), reviewed_at DATETIME, requested_at DATETIME)"
            )
        )

    bootstrap.ensure_runtime_schema_compatibility(engine)

    columns = {item["name"] for item in inspect(engine).get_columns("resource_requests")}
    assert {"dismissed", "original_class_group_id", "original_period_index"} <= columns


def test_bootstrap_seeds_configuration_for_active_semester(engine):
    bootstrap.Base.metadata.create_all(bind=engine)
    with Session(engine) as db:
        db.add(Semester(name="Spring", start_date=date(2027, 1, 10), end_date=date(2027, 5, 30), is_active=True))
        db.commit()

    bootstrap.ensure_runtime_schema_compatibility(engine)
    bootstrap.ensure_runtime_schema_compatibility(engine)

    with Session(engine) as db:
        configs = list(db.execute(select(ScheduleConfiguration)).scalars())
    assert len(configs) == 1
    assert configs[0].periods_per_day > 0


def test_bootstrap_without_active_semester_seeds_nothing(engine):
    bootstrap.ensure_runtime_schema_compatibility(engine)

    with Session(engine) as db:
        assert db.execute(select(ScheduleConfiguration)).scalars().first() is None
