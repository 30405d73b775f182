from __future__ import annotations

import pytest
from fakes import RecordingSleep

from toolstream.tools.catalog import Capability, CapabilityCatalog


@pytest.fixture
def catalog() -> CapabilityCatalog:
    return CapabilityCatalog.build(
        [
            Capability(name="lookup_a", description="first lookup"),
            Capability(name="lookup_b", description="second lookup"),
        ]
    )


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()
