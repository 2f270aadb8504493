from fastapi import Depends, Header, HTTPException

from gradchat.client.db.persistence import PersistenceClient
from gradchat.client.rag.query_api import query_client
from gradchat.service.session import ChatSession, SessionRegistry

registry = SessionRegistry(PersistenceClient(), query_client)


def get_registry() -> SessionRegistry:
    return registry


def get_user_id(x_user_id: str = Header(default="")) -> str:
    # Identity is resolved by the auth provider in front of this service.
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="authentication required")
    return user_id


async def get_session(
    user_id: str = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
) -> ChatSession:
    return await sessions.get_or_create(user_id)
