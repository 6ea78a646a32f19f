import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session", autouse=True)
def setup_db(ordering_bed):
    from ordering.domain import ordering
    from ordering.utils.db import drop_db, setup_db

    setup_db(ordering)

    yield

    drop_db(ordering)


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()

        # Forget order numbers handed out in this test
        from ordering.order.numbering import issued_sequences

        issued_sequences.reset()


@pytest.fixture()
def catalogue():
    """A fresh in-memory catalogue installed as the active one."""
    from ordering.catalogue import reset_catalogue, set_catalogue
    from ordering.catalogue.memory_adapter import InMemoryCatalogue

    catalogue = InMemoryCatalogue()
    set_catalogue(catalogue)
    yield catalogue
    reset_catalogue()


@pytest.fixture()
def address():
    return {
        "street": "1 Market St",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
    }
