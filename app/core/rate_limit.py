from slowapi import Limiter
from slowapi.util import get_remote_address

# Bulk conversion fans out over the worker pool; keep callers from
# stacking runs on top of each other.
BULK_CONVERSION_LIMIT = "5/minute"

# Attached to ``app.state`` in ``app.main``
limiter = Limiter(key_func=get_remote_address)
