from sqlalchemy.ext.asyncio import AsyncSession

from site_inventory.models.support.activity_models import UserActivity
from site_inventory.models.users.user_models import User
from site_inventory.constants.activity_templates import ACTIVITY_TEMPLATES
from site_inventory.constants.activity_codes import ActivityCode


async def emit_activity(
    db: AsyncSession,
    *,
    user: User,
    code: ActivityCode,
    **context,
):
    """Queue an audit row on the caller's transaction. Never commits."""
    template = ACTIVITY_TEMPLATES.get(code)
    if not template:
        raise ValueError(f"No activity template for code {code}")

    context.setdefault("actor_role", user.role.replace("_", " ").title())
    context.setdefault("actor_email", user.username)

    try:
        message = template.format(**context)
    except KeyError as e:
        raise ValueError(
            f"Missing activity context key: {e.args[0]} for {code}"
        )

    db.add(
        UserActivity(
            user_id=user.id,
            username_snapshot=user.username,
            activity_code=code.value,
            message=message,
        )
    )
