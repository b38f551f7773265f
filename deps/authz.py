# deps/authz.py
from fastapi import Depends, HTTPException, status

from deps.auth import get_current_user
from models import User

SUPER_ROLE = "admin"

def require_role(*role_names: str):
    """Dependency returning the caller when their role is one of role_names (admin always passes)."""
    def dep(user: User = Depends(get_current_user)) -> User:
        if user.role_name == SUPER_ROLE or user.role_name in role_names:
            return user
        need = ", ".join(role_names)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail=f"Need any of: {need}")
    return dep
