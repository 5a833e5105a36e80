from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Storage and on/off come from RATELIMIT_* config keys at init_app time
limiter = Limiter(get_remote_address)
