from dataclasses import dataclass
from typing import Optional, Union

from chainshop.app.services.session import Session, SessionInvalidError, SessionStore

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"
PRODUCTS_PATH = "/products"


@dataclass(frozen=True)
class Redirect:
    """Navigation instruction returned by a view instead of rendering."""
    location: str
    replace: bool = False


async def require_session(session: SessionStore) -> Union[Session, Redirect]:
    """Auth gate: the current session, or a redirect to the login page."""
    try:
        return await session.current()
    except SessionInvalidError:
        return Redirect(LOGIN_PATH, replace=True)


def first_error(*errors: Optional[str]) -> Optional[str]:
    return next((e for e in errors if e), None)
