# Security module
from pms.security.auth import (
    get_password_hash, create_access_token,
    get_current_user, get_security_context, require_role
)
from pms.security.context import SecurityContext

__all__ = [
    'get_password_hash', 'create_access_token',
    'get_current_user', 'get_security_context', 'require_role', 'SecurityContext'
]
