from functools import wraps
from flask_jwt_extended import verify_jwt_in_request, get_jwt
from medspa.services.policy import Identity


def require_identity(fn):
    """Validate the bearer token and pass the caller to the view as `identity`."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        claims = get_jwt()
        kwargs['identity'] = Identity.from_claims(claims.get('sub'), claims.get('role'))
        return fn(*args, **kwargs)
    return wrapper
