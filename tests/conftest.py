import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from library_inventory.db import init_db, make_engine, make_session_factory
from library_inventory.repository import InventoryRepository


@pytest.fixture()
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture()
def tracer(span_exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("tests")


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'inventory.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def repository(engine, tracer):
    return InventoryRepository(make_session_factory(engine), tracer=tracer)


@pytest.fixture()
def broken_repository(tmp_path, tracer):
    # no tables: every statement fails inside the store
    engine = make_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    yield InventoryRepository(make_session_factory(engine), tracer=tracer)
    engine.dispose()


@pytest.fixture()
def make_title(repository):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "isbn": f"978-0-00-{counter['n']:06d}",
            "title": f"Title {counter['n']}",
            "author": "Anon",
            "genre": "Fiction",
            "total_copies": 1,
            "available_copies": 1,
            "cover": "",
        }
        fields.update(overrides)
        return repository.create_title(**fields)

    return _make
