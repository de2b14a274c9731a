import warnings

# Ignore warnings from third-party test plumbing
warnings.filterwarnings("ignore", category=DeprecationWarning, module="starlette.*")

# Import process fixtures so they are available to all tests
from tests.fixtures.process_fixtures import *  # noqa: E402, F403
