from fastapi import Depends, HTTPException, status

from site_inventory.constants.roles import ADMIN
from site_inventory.models.users.user_models import User
from site_inventory.utils.get_user import get_current_user


def require_role(roles: list[str]):
    allowed = {r.lower() for r in roles} | {ADMIN}

    async def role_checker(user: User = Depends(get_current_user)):
        if user.role.lower() not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permission denied"
            )
        return user
    return role_checker
