from chainshop.app.api_client.base import BackendClient


async def api_get_referrals(client: BackendClient, wallet: str) -> list:
    body = await client.get(f"/referrals/{wallet}")
    return body.get("referrals") or []


async def api_get_commissions(client: BackendClient, wallet: str) -> list:
    body = await client.get(f"/referrals/{wallet}/commissions")
    return body.get("commissions") or []


async def api_get_referral_stats(client: BackendClient, wallet: str) -> dict:
    """Raw stats payload; empty dict when the backend has nothing for this wallet."""
    body = await client.get(f"/referrals/{wallet}/stats")
    return body.get("stats") or {}


async def api_register_referral(client: BackendClient, payload: dict) -> dict:
    body = await client.post("/referrals/register", data=payload)
    return body.get("referral") or {}


async def api_process_commission(client: BackendClient, payload: dict) -> dict:
    body = await client.post("/referrals/commission", data=payload)
    return body.get("commission") or {}
