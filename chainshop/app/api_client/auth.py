from typing import Optional

from chainshop.app.api_client.base import BackendClient, BackendError
from chainshop.app.schemas import LoginData, SignupData, UserProfile


class AuthResult:
    """Token plus the raw user payload the backend returned with it."""

    def __init__(self, token: str, user: dict):
        self.token = token
        self.user = user


async def api_login(client: BackendClient, email: str, password: str) -> AuthResult:
    body = await client.post(
        "/auth/login",
        data=LoginData(email=email, password=password).to_payload(),
        authorized=False,
    )
    data = body.get("data") or {}
    token = data.get("token")
    if not token:
        raise BackendError(body.get("message") or "Login failed", 401)
    user = {k: v for k, v in data.items() if k != "token"}
    return AuthResult(token, user)


async def api_signup(client: BackendClient, signup: SignupData) -> AuthResult:
    body = await client.post("/auth/signup", data=signup.to_payload(), authorized=False)
    data = body.get("data") or {}
    token = data.get("token")
    if not token:
        raise BackendError(body.get("message") or "Registration failed", 400)
    return AuthResult(token, data.get("user") or {})


async def api_get_profile(client: BackendClient, token: Optional[str] = None) -> UserProfile:
    body = await client.get("/user/profile", token=token)
    return UserProfile.model_validate(body.get("data") or {})


async def api_update_profile(client: BackendClient, changes: dict, token: Optional[str] = None) -> UserProfile:
    body = await client.put("/user/profile", data=changes, token=token)
    return UserProfile.model_validate(body.get("data") or {})
