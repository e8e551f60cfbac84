# Ensure project root is on sys.path so 'sleept' and 'tests.fixtures' are importable
# when running pytest without installing the package.
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.resolve()
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sleept.logging_config import error_aggregator  # noqa: E402


@pytest.fixture(autouse=True)
def reset_error_aggregator():
    """Keep error counts from one test out of the next."""
    yield
    error_aggregator.reset()
