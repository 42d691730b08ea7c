"""Shared helpers for HTTP-level tests."""

from httpx import AsyncClient

DEFAULT_PASSWORD = "correct-horse-battery"


async def login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD) -> dict:
    """Register (if needed) and log in; returns the Authorization header."""
    await client.post("/register", json={"email": email, "password": password})
    response = await client.post("/login", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def create_school(client: AsyncClient, headers: dict, name: str = "Riverside Elementary") -> str:
    response = await client.post("/schools", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def user_id_of(client: AsyncClient, headers: dict) -> str:
    response = await client.get("/me", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["user"]["id"]
